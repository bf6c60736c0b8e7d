"""Server-wide constants."""

PROJECT_NAME = "Approval Chain"
API_V1_STR = "/api/v1"
