"""
Learning-engine insight builders.

Turn raw aggregate rows into the one-line summaries shown to the model
under "Learning Engine Insights". Pure functions; rows missing the fields
a summary needs are skipped.
"""

import json
import math
from typing import Any, Dict, Iterable, List, Optional
from memory.schemas import LearningInsight


def effectiveness_insights(skin_type: str, rows: Iterable[Dict[str, Any]]) -> List[LearningInsight]:
    insights = []
    for row in rows:
        name = row.get("ingredient_name")
        if not name:
            continue
        pct = int(math.floor(float(row.get("effectiveness_score") or 0) * 100 + 0.5))
        concern = row.get("concern")
        suffix = f" for {concern}" if concern and concern != "__all__" else ""
        insights.append(LearningInsight(
            type="effectiveness",
            summary=(
                f"Users with {skin_type} skin report {pct}% satisfaction with "
                f"{name} ({row.get('ingredient_function') or 'unknown function'}) "
                f"based on {row.get('sample_size')} reports{suffix}"
            ),
        ))
    return insights


def seasonal_insight(row: Optional[Dict[str, Any]]) -> Optional[LearningInsight]:
    if not row or not row.get("pattern_description"):
        return None
    data = row.get("data") or {}
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except ValueError:
            data = {}
    if not isinstance(data, dict):
        data = {}
    texture = data.get("texture_advice") or ""
    focus = ", ".join(data.get("ingredients_to_emphasize") or []) or "hydration"
    return LearningInsight(
        type="seasonal",
        summary=f"{row['pattern_description']}. {texture} Focus on: {focus}",
    )


def trend_insights(rows: Iterable[Dict[str, Any]]) -> List[LearningInsight]:
    return [
        LearningInsight(
            type="trend",
            summary=f"{row['trend_name']} is currently {row.get('status')} in the K-beauty community",
        )
        for row in rows
        if row.get("trend_name")
    ]
