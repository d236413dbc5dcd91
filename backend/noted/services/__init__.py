"""
Noted.AI Backend: Services Layer
================================

What:  Business logic between the routes (HTTP) and the database.
How:   Services take an AsyncSession and domain objects, raise exceptions
       from noted.exceptions, and return schema objects or ORM rows.

Service Inventory:
    - LLMService (abstract) / OpenAIService: chat completions, retry, circuit breaker
    - fallback: deterministic summaries, flashcards, outlines and citations
    - QuotaService: atomic check-and-consume of metered AI features
    - AIService: the four AI features (model choice, fallback switching)
    - AuthService: passwords, JWTs, verification and reset tokens
    - NoteService: note CRUD, sharing and stats
    - BillingService / StripeGateway: plans, Stripe subscriptions, webhooks
    - UniversityService: partnership applications and partner dashboard
    - Mailer: SMTP delivery of account and billing emails
"""
