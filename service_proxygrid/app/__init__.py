"""
Proxy Grid API gateway package.

The gateway fronts client requests to the Proxy Grid aggregation backend:
- Rate limiting: fixed window per client address
- Validation and sanitization of query parameters by endpoint class
- Forwarding with credential injection to the backend
- Response shaping and Cache-Control by endpoint family

Structure:
- app.main: FastAPI app, routes, and request pipeline.
- app.adapters: HTTP client for the upstream backend.
- app.caching: Cache-Control policy table.
- app.ratelimit: Fixed-window limiter, stores and middleware.
- app.domain: Endpoint classification, response shaping, security headers.
"""
