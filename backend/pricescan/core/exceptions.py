"""Custom exception classes for the price-scan engine."""


class PriceScanError(Exception):
    """Base exception for all price-scan errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class JobAlreadyRunningError(PriceScanError):
    """Raised when a job is started while another one is active."""

    def __init__(self, running_job_id: str):
        self.running_job_id = running_job_id
        super().__init__(f"Scraping job already in progress: {running_job_id}")


class NoJobRunningError(PriceScanError):
    """Raised when stop() is called with no active job."""

    def __init__(self):
        super().__init__("No job currently running")


class InvalidJobError(PriceScanError):
    """Raised when a job or its inputs violate start preconditions."""


class InvalidTransitionError(PriceScanError):
    """Raised when a job event is not valid for the job's current state."""

    def __init__(self, job_id: str, status: str, event: str):
        self.job_id = job_id
        self.status = status
        self.event = event
        super().__init__(f"Cannot apply {event} to job {job_id} in state {status}")


class AdapterError(PriceScanError):
    """Raised by a source adapter on network or parse failure."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"Adapter error for {source}: {message}")


class RateLimitError(AdapterError):
    """Raised when an external source signals throttling."""

    def __init__(self, source: str):
        super().__init__(source, "rate limit exceeded")


class PersistenceError(PriceScanError):
    """Raised when results for a product could not be handed to the store."""

    def __init__(self, product_id: str, message: str):
        self.product_id = product_id
        super().__init__(f"Could not persist results for product {product_id}: {message}")
