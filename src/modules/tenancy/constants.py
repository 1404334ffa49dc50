"""Tenancy module constants."""

# Elevated-mode allowlist entry that admits every authenticated platform admin
PLATFORM_ADMIN_ACTOR = "role:platform_admin"

# Actor identifiers
USER_ACTOR_PREFIX = "user:"
JOB_ACTOR_PREFIX = "job:"
USAGE_REPORT_ACTOR = f"{JOB_ACTOR_PREFIX}tenant-usage-report"

# Permission wildcard granted to tenant administrators
PERMISSION_WILDCARD = "*"

# Cache configuration
CACHE_PREFIX = "tenant"
CACHE_STATUS_KEY = "status"

# Audit entity type for provisioning events
TENANT_ENTITY_TYPE = "tenants"
ELEVATION_ENTITY_TYPE = "elevated_session"
