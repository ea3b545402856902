"""WSGI configuration for production deployment."""
import os
from rollcall import create_app

# Sessions live in process memory: serve with a single worker process
# (threads are fine).
app = create_app(os.getenv('FLASK_ENV', 'production'))

if __name__ == "__main__":
    app.run()
