"""
Noted.AI Backend: Application Package
=====================================

What: Academic productivity API (notes, AI study tools, subscriptions, university partnerships).
Who:  Imported by uvicorn (`noted.main:app`), Alembic and the test suite.

Layering:

    ┌─────────────────────────────────────┐
    │     Routes + Dependencies (HTTP)    │  ← auth, quota gate, status codes
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← notes, AI, billing, universities
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

External clients (OpenAI, Stripe, SMTP) are wrapped in service objects that
the app factory constructs once and hands to routes through FastAPI
dependencies.
"""

__version__ = "1.0.0"
