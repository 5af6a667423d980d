import os

app = "main:app"
host = "0.0.0.0"
port = int(os.getenv("PORT", "9001"))
workers = int(os.getenv("UVICORN_WORKERS", str(max(2, (os.cpu_count() or 1)))))
loop = "uvloop"  # needs uvicorn[standard]
http = "h11"
timeout_keep_alive = int(os.getenv("UVICORN_KEEPALIVE", "5"))
log_level = os.getenv("LOG_LEVEL", "info")
