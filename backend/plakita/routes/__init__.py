"""
Plakita Backend — API Routes Package
======================================

Route Inventory:
    - health.py:     GET  /health
    - auth.py:       POST /api/auth/login | register | logout | refresh
                     GET  /api/auth/session
    - tags.py:       GET  /api/tags/lookup            POST /api/tags/{id}/claim
    - pets.py:       GET/PUT /api/pets/{id}           GET  /api/public/pets/{id}
    - dashboard.py:  GET  /api/dashboard/tags         DELETE /api/dashboard/pets/{id}
    - admin.py:      /api/admin/* (admin role)

Routes stay thin: pull inputs from the request, call one service, wrap the
result with `ok(...)`. Failures are raised and rendered by main.py.
"""
