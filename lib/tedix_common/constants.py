"""
Constants used throughout the brand discovery pipeline.

Centralizes batch sizes, limits and timeouts so tuning happens in one place.
"""

# =============================================================================
# Discovery (map + scrape)
# =============================================================================

# Maximum links requested from the mapping API per domain
MAP_URL_LIMIT = 20

# Default number of URLs kept per category when selecting top URLs
MAX_URLS_PER_CATEGORY = 8

# Priority assigned to mapped URLs that scored zero
DEFAULT_URL_PRIORITY = 50

# Per-page timeout passed to the batch scrape job (milliseconds)
SCRAPE_PAGE_TIMEOUT_MS = 30000

# Rough hint returned to callers of the discovery trigger
ESTIMATED_PIPELINE_TIME = "2-5 minutes"

# Webhook route appended to BACKEND_URL
WEBHOOK_PATH = "/api/webhook/firecrawl"


# =============================================================================
# Content store
# =============================================================================

# Items uploaded concurrently per batch
UPLOAD_BATCH_SIZE = 5

# Pause between upload batches (seconds)
UPLOAD_BATCH_DELAY_SECONDS = 0.1

# Keys per delete_objects call
DELETE_BATCH_SIZE = 100

# Processed body is the markdown truncated to this many characters
PROCESSED_CONTENT_MAX_CHARS = 5000

# Root prefix for all brand content
BRANDS_PREFIX = "brands"


# =============================================================================
# Reconciliation sweep
# =============================================================================

# Brands checked for extract completion per sweep
EXTRACT_SWEEP_BATCH_SIZE = 10

# Brands finalized per sweep
FINALIZE_SWEEP_BATCH_SIZE = 5

# How long a sweep waits on background index sync calls before returning (seconds)
SYNC_WAIT_SECONDS = 20

# Industry recorded when extraction did not return one
DEFAULT_INDUSTRY = "Technology"


# =============================================================================
# HTTP
# =============================================================================

# Timeout for scraping service calls (seconds)
FIRECRAWL_TIMEOUT_SECONDS = 30.0

# Timeout for the search index sync call (seconds)
AI_SEARCH_TIMEOUT_SECONDS = 15.0

DEFAULT_FIRECRAWL_API_URL = "https://api.firecrawl.dev"

AI_SEARCH_API_URL = "https://api.cloudflare.com/client/v4"

LOGO_SERVICE_URL = "https://logo.clearbit.com"
