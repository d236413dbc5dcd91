"""
Noted.AI Backend: API Routes Package
====================================

Route Inventory:
    - auth.py:           /api/auth/*            accounts and tokens
    - notes.py:          /api/notes/*           notes, sharing, stats
    - ai.py:             /api/ai/*              metered AI features
    - subscriptions.py:  /api/subscriptions/*   plans, Stripe, webhook
    - universities.py:   /api/universities/*    partnerships
    - health.py:         /api/health

Routes stay thin: parse the request, call a service, shape the response.
"""
