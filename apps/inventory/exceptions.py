"""
Domain errors raised by the batch store and the discard workflow.

Validation failures use django.core.exceptions.ValidationError like the
rest of the services. Every error here carries a context dict that is
rendered next to the message in API responses.
"""


class StockError(Exception):
    code = "stock_error"
    status_code = 400
    retryable = False
    default_message = "Stock operation failed."

    def __init__(self, message=None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)


class DuplicateBatchNumber(StockError):
    code = "duplicate_batch_number"
    status_code = 409
    default_message = "A batch with this batch number already exists."

    def __init__(self, batch_number):
        super().__init__(
            f"Batch number {batch_number} already exists.",
            batch_number=batch_number,
        )


class NotFound(StockError):
    code = "not_found"
    status_code = 404
    default_message = "Not found."


class BatchNotFound(NotFound):
    code = "batch_not_found"

    def __init__(self, batch_id=None, batch_number=None):
        label = batch_number if batch_number is not None else batch_id
        context = {}
        if batch_id is not None:
            context["batch_id"] = batch_id
        if batch_number is not None:
            context["batch_number"] = batch_number
        super().__init__(f"Batch {label} not found.", **context)


class MedicineNotFound(NotFound):
    code = "medicine_not_found"

    def __init__(self, medicine_id, batch_number=None):
        context = {"medicine_id": medicine_id}
        if batch_number is not None:
            context["batch_number"] = batch_number
            message = f"Medicine {medicine_id} not found in batch {batch_number}."
        else:
            message = f"Medicine {medicine_id} not found."
        super().__init__(message, **context)


class AlreadyFinalized(StockError):
    code = "already_finalized"
    status_code = 409

    def __init__(self, batch_number):
        super().__init__(f"Batch {batch_number} is already finalized.", batch_number=batch_number)


class InsufficientStock(StockError):
    code = "insufficient_stock"
    status_code = 409

    def __init__(self, medicine_id, requested, available, batch_number=None):
        context = {"medicine_id": medicine_id, "requested": requested, "available": available}
        if batch_number is not None:
            context["batch_number"] = batch_number
        super().__init__(
            f"Cannot discard {requested} units of medicine {medicine_id}: only {available} available.",
            **context,
        )


class WriteConflict(StockError):
    code = "write_conflict"
    status_code = 409
    retryable = True

    def __init__(self, batch_number, expected_version=None, current_version=None):
        context = {"batch_number": batch_number}
        if expected_version is not None:
            context["expected_version"] = expected_version
        if current_version is not None:
            context["current_version"] = current_version
        super().__init__(
            f"Batch {batch_number} was modified concurrently. Reload and try again.",
            **context,
        )
