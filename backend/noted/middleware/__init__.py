"""
Noted.AI Backend: Middleware Package
====================================

Request path through the stack (outermost first):

    RateLimit → RequestID → RequestLogging → GZip → CORS → route

Starlette runs the last-added middleware first, so main.create_app adds
them in the reverse of this order.
"""
