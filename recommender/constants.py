"""Constants that tune recommendation, learning and embedding behavior."""

# Online learning
LEARNING_RATE = 0.05
MAX_AFFINITY = 5.0 # every affinity stays within [-MAX_AFFINITY, MAX_AFFINITY]
NEGATIVE_DECAY_FACTOR = 0.9
DEFAULT_DECAY_DAYS = 90
PRUNE_EPSILON = 0.01
MAX_TRAINING_EVENTS = 1000 # FIFO log size kept on the profile

# Sub-weights baked into the base delta of a training event
AUTHOR_DELTA = 1.0
VENUE_DELTA = 0.5
TOPIC_DELTA = 0.3
CATEGORY_DELTA = 0.4
MAX_EVENT_KEYWORDS = 5

# Signal capture
FLUSH_THRESHOLD = 10
DEDUP_WINDOW_SECONDS = 2.0

# Keyword extraction
MIN_KEYWORD_LENGTH = 4
STOP_WORDS = frozenset({
    "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "been",
    "using", "via", "based", "new", "novel", "approach", "method", "study",
})

# Embeddings / ANN
EMBEDDING_DIM = 384
MIN_TOKEN_LENGTH = 2
HASH_SLOT_WEIGHTS = (1.0, 0.5, 0.25)
ANN_MAX_CONNECTIONS = 16
ANN_EF_CONSTRUCTION = 200
ANN_EF_SEARCH = 64
SIMILARITY_TOP_K = 5

# Caches (seconds)
SCORE_CACHE_TTL = 300
SIMILARITY_CACHE_TTL = 300

# Ranking
SERENDIPITY_POOL_SIZE = 10
SERENDIPITY_MIN_VELOCITY = 0.3
SERENDIPITY_MAX_AUTHOR = 0.2
SERENDIPITY_MAX_TOPIC = 0.2
EXPLANATION_MIN_CONTRIBUTION = 0.1
SEMANTIC_EXPLANATION_MIN = 0.1
HYBRID_EXPLANATION_MIN = 0.3
FOR_YOU_SIMILARITY_WEIGHT = 0.5
RECENTLY_READ_DAYS = 30

# Cold start
COLD_START_MIN_DOCUMENTS = 20
COLD_START_AUTHOR_SCALE = 100.0
COLD_START_VENUE_SCALE = 100.0
COLD_START_TOPIC_SCALE = 50.0
COLD_START_STARRED_BOOST = 2.0
COLD_START_SEARCH_BOOST = 0.5
MUTED_AUTHOR_AFFINITY = -2.0
MUTED_VENUE_AFFINITY = -2.0
MUTED_CATEGORY_AFFINITY = -1.5

# Settings defaults
DEFAULT_SERENDIPITY_FREQUENCY = 10
DEFAULT_RERANK_THROTTLE_MINUTES = 5
