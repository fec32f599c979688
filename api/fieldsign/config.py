import os

DATABASE_URL = os.getenv("DATABASE_URL")
MINIO_ENDPOINT = os.getenv("MINIO_ENDPOINT", "minio:9000")
MINIO_ACCESS_KEY = os.getenv("MINIO_ACCESS_KEY", "minioadmin")
MINIO_SECRET_KEY = os.getenv("MINIO_SECRET_KEY", "minioadmin")
MINIO_BUCKET = os.getenv("MINIO_BUCKET", "fieldsign")
MINIO_SECURE = os.getenv("MINIO_SECURE", "false").lower() in ("1", "true", "yes")
SECRET_KEY = os.getenv("SECRET_KEY", "devsecret")
REDIS_URL = os.getenv("REDIS_URL", "redis://redis:6379/0")
WORKER_QUEUE = os.getenv("WORKER_QUEUE", "fieldsign")
SIGNING_LINK_BASE = os.getenv("SIGNING_LINK_BASE", "http://localhost:3000/sign")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# object store retries: attempts, then min(base * 2**(n-1), cap) seconds between them
STORAGE_MAX_ATTEMPTS = int(os.getenv("STORAGE_MAX_ATTEMPTS", "3"))
STORAGE_BACKOFF_BASE = float(os.getenv("STORAGE_BACKOFF_BASE", "0.1"))
STORAGE_BACKOFF_CAP = float(os.getenv("STORAGE_BACKOFF_CAP", "3.0"))
