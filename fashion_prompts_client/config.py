import os


class ClientConfig:
    BASE_URL = os.getenv("STUDIO_API_URL", "http://localhost:8080/api")
    TIMEOUT = 30.0  # seconds
    # A batch of 30 images with Midjourney relay can run for a long time
    BATCH_TIMEOUT = float(os.getenv("STUDIO_BATCH_TIMEOUT", "7200"))
