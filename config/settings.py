import os


class Settings:
    """Configuration settings for the dispatch backend."""

    # MongoDB Configuration
    MONGO_URI = os.getenv("MONGO_URI", "mongodb://host.docker.internal:27017")
    DB_NAME = os.getenv("MONGO_DB_NAME", "dispatch_backend")
    DISPATCH_COLLECTION = os.getenv("DISPATCH_COLLECTION", "dispatch_data")
    DISPATCH_RESULTS_COLLECTION = os.getenv("DISPATCH_RESULTS_COLLECTION", "dispatch_results")
    COUNT_MASTER_COLLECTION = os.getenv("COUNT_MASTER_COLLECTION", "count_master")
    MARKET_MASTER_COLLECTION = os.getenv("MARKET_MASTER_COLLECTION", "market_master")
    CUSTOMER_MASTER_COLLECTION = os.getenv("CUSTOMER_MASTER_COLLECTION", "customer_master")

    # Master data sync
    SYNC_BATCH_SIZE = int(os.getenv("SYNC_BATCH_SIZE", "15"))
    SYNC_FAILURE_POLICY = os.getenv("SYNC_FAILURE_POLICY", "abort")

    # Dispatch rows carrying this marker in `canceled` are voided
    CANCELED_SENTINEL = os.getenv("CANCELED_SENTINEL", "X")

    # HTTP server
    PORT = int(os.getenv("PORT", "5000"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


# Create a singleton instance
settings = Settings()
