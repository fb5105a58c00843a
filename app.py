#!/usr/bin/env python3
"""
Receipt Queue - print-job queue for Epson Server Direct Print and Star CloudPRNT printers

Development entry point. In production point a WSGI server at `app:app`.
Printers poll once a second, so run with threads (the default here).
"""

import os

from receipt_queue import create_app

app = create_app()

if __name__ == "__main__":
    host = os.environ.get("RECEIPTQUEUE_HOST", "0.0.0.0")
    port = int(os.environ.get("RECEIPTQUEUE_PORT", 5000))
    app.logger.info("Starting Receipt Queue on http://%s:%d", host, port)
    app.logger.info("Press Ctrl+C to stop the server")
    app.run(host=host, port=port, debug=False, threaded=True)
