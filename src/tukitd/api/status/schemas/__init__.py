from .system import HealthResponse, TransactionResponse, TransactionListResponse

__all__ = ["HealthResponse", "TransactionResponse", "TransactionListResponse"]
