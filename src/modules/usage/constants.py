# Default credit cost per paid service, used when a charge request omits the cost
SERVICE_CREDIT_COSTS: dict[str, int] = {
    "name-analysis": 10,
    "dream-interpretation": 15,
    "story": 20,
    "chat": 5,
    "face-reading": 25,
    "saju": 25,
    "palmistry": 25,
    "horoscope": 15,
    "zodiac": 15,
    "love-compatibility": 20,
    "name-compatibility": 15,
    "marriage-compatibility": 25,
    "tarot": 20,
    "tojeong": 15,
}

IDEMPOTENCY_KEY_HEADER = "Idempotency-Key"
MAX_IDEMPOTENCY_KEY_LENGTH = 200

CANCELLED_ERROR = "cancelled"
TIMEOUT_ERROR = "timeout"
ABANDONED_ERROR = "abandoned"
