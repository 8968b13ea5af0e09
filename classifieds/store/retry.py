import random

def compute_backoff_seconds(attempt: int, base: float = 0.02, cap: float = 1.0) -> float:
    # exponential backoff with jitter
    exp = min(cap, base * (2 ** max(0, attempt - 1)))
    jitter = random.uniform(0, exp / 3)
    return exp + jitter
