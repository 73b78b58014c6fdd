# clinicdesk/limiter.py
# Shared rate limiter instance, kept apart from main.py so routers can import it.

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

PUBLIC_INVOICE_RATE = "30/minute"
