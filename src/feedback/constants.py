"""Detection thresholds, verdict thresholds and retention defaults for the feedback loop."""

# Detection confidence tiers: explicit > semantic > behavioral
EXPLICIT_CONFIDENCE = 0.95

# Jaccard threshold for semantic matching, below the 0.85 dedup threshold to catch paraphrases
SEMANTIC_THRESHOLD = 0.5
SEMANTIC_MAX_CONFIDENCE = 0.85

BEHAVIORAL_CONFIDENCE_BASE = 0.4
FILE_ACCESS_CONFIDENCE = 0.5
TASK_TOPIC_CONFIDENCE = 0.4
TASK_TOPIC_MIN_OVERLAP = 0.3

# Explicit triggers only need a loose fact match to attribute the reference
EXPLICIT_FACT_MIN_SIMILARITY = 0.1
EXPLICIT_LOOKBEHIND_CHARS = 50
EXPLICIT_LOOKAHEAD_CHARS = 100

# Verdicts
USED_THRESHOLD = 0.2
IGNORED_THRESHOLD = -0.2
NEGATIVE_SIGNAL_WEIGHT = 0.5

# Negative signal weights
LOW_POSITION_THRESHOLD = 15
LOW_POSITION_WEIGHT = 0.3
TOPIC_MISMATCH_THRESHOLD = 0.1
TOPIC_MISMATCH_WEIGHT = 0.5
FILES_NOT_ACCESSED_WEIGHT = 0.3
MAX_IGNORE_CONFIDENCE = 0.9

# Chunking for semantic detection
CHUNK_MAX_WORDS = 50
CHUNK_OVERLAP_WORDS = 10

# Summaries
TOP_FACTS_LIMIT = 5
EVIDENCE_PREVIEW_CHARS = 200

# Retention
SESSION_DATA_RETENTION_DAYS = 7

# Recall defaults
DEFAULT_RECALL_LIMIT = 20
DEFAULT_RECALL_BUDGET = "high"
DEFAULT_FACT_TYPES = ("world", "experience")

# Storage locations, relative to the project directory
SESSION_DIR = (".claude", "feedback-sessions")
SESSION_FILE = ".recall-session.json"
ARCHIVE_PREFIX = ".recall-session-"
ARCHIVE_ID_CHARS = 8
OFFLINE_QUEUE_FILE = (".claude", "offline-feedback.json")
QUEUE_VERSION = 1
