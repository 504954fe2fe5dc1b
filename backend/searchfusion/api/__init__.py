"""SearchFusion REST API package.

Sub-modules expose FastAPI routers for each domain:
- search: hybrid / keyword / batch search, suggestions and intent analysis
- analytics: query log summaries and recent queries
"""
