"""
Quota Gate Backend Package.

FastAPI service that targets survey respondents against multi-dimensional
audience quotas and gates entry into a survey based on live quota availability.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration, HTTP client lifecycle, key-value store, dependencies
    - models: Pydantic schemas and enums
    - services: Quota validation, screening synthesis, vendor allocation,
      the quota oracle client and the respondent qualification protocol
"""

__version__ = "1.0.0"
