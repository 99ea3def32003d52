"""Default relay and upstream constants."""

DEFAULT_BUFFER_CAPACITY = 20
DEFAULT_RETRY_DELAY_S = 5.0
DEFAULT_EVENT_TYPE = "tweet"

TWITTER_API_URL = "https://api.twitter.com"
TWITTER_RULE_TAG = "tweetwall"
TWITTER_SEARCH_MIN_RESULTS = 10
TWITTER_SEARCH_MAX_RESULTS = 100
TWITTER_TWEET_FIELDS = "created_at,author_id"
TWITTER_USER_FIELDS = "name,username,profile_image_url"

DEFAULT_RELAY_CONFIG = {
    "host": None,
    "port": 1235,
    "track": "#hack24",
    "buffer_capacity": DEFAULT_BUFFER_CAPACITY,
    "backfill_enabled": True,
    "backfill_count": 5,
    "retry_delay_s": DEFAULT_RETRY_DELAY_S,
    "twitter_api_url": TWITTER_API_URL,
    "http_timeout_s": 30.0,
    "log_level": "INFO",
}
