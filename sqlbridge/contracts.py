"""Versioned contract identifiers for bridge payloads and settings."""

EXECUTE_RESULT_SCHEMA_V1 = "execute_result.v1"
ERROR_SCHEMA_V1 = "error.v1"
SETTINGS_SCHEMA_V1 = "settings.v1"

SUPPORTED_SETTINGS_SCHEMAS = {
    SETTINGS_SCHEMA_V1,
}
