from __future__ import annotations

MAX_SCORE = 20.0

# (full query match, per-word match) points per field
NAME_POINTS = (10.0, 2.0)
SERVICE_TYPE_POINTS = (8.0, 1.5)
DESCRIPTION_POINTS = (5.0, 1.0)


def relevance_score(query: str, name: str, description: str, service_type: str) -> float:
    """Additive substring-match score of a query against a candidate, clamped to [0, 20].

    Matching is case-insensitive with no stemming or fuzziness.
    """
    q = (query or "").strip().lower()
    if not q:
        return 0.0

    fields = (
        ((name or "").lower(), NAME_POINTS),
        ((service_type or "").lower(), SERVICE_TYPE_POINTS),
        ((description or "").lower(), DESCRIPTION_POINTS),
    )

    score = 0.0
    for text, (full_points, _) in fields:
        if q in text:
            score += full_points

    for word in q.split():
        for text, (_, word_points) in fields:
            if word in text:
                score += word_points

    return min(score, MAX_SCORE)
