"""Confidence scoring for provider geocoding results."""

import logging
from dataclasses import dataclass

from timetiles.core.geocoding.models import RawGeocodeResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoringWeights:
    """Tunable weights. Results always end up clamped to [0, 1]."""

    default_base: float = 0.5
    street_bonus: float = 0.2
    locality_bonus: float = 0.1

    google_base: float = 0.6
    google_place_id_bonus: float = 0.25
    google_rooftop_bonus: float = 0.1
    google_interpolated_bonus: float = 0.05
    google_partial_match_penalty: float = 0.2

    nominatim_base: float = 0.4
    nominatim_importance_weight: float = 0.5
    nominatim_osm_id_bonus: float = 0.05
    nominatim_street_bonus: float = 0.1


class ConfidenceScorer:
    """Calculate a [0, 1] confidence for a raw provider result."""

    def __init__(self, weights: ScoringWeights | None = None):
        self.weights = weights or ScoringWeights()

    def score(self, result: RawGeocodeResult, provider: str) -> float:
        if provider == "google":
            confidence = self._score_google(result)
        elif provider == "nominatim":
            confidence = self._score_nominatim(result)
        else:
            confidence = self._score_default(result)
        return max(0.0, min(1.0, confidence))

    def _score_google(self, result: RawGeocodeResult) -> float:
        w = self.weights
        extra = result.extra
        confidence = w.google_base
        if extra.get("place_id"):
            confidence += w.google_place_id_bonus
        location_type = extra.get("location_type")
        if location_type == "ROOFTOP":
            confidence += w.google_rooftop_bonus
        elif location_type == "RANGE_INTERPOLATED":
            confidence += w.google_interpolated_bonus
        if extra.get("partial_match"):
            confidence -= w.google_partial_match_penalty
        return confidence

    def _score_nominatim(self, result: RawGeocodeResult) -> float:
        w = self.weights
        extra = result.extra
        try:
            importance = float(extra.get("importance") or 0.0)
        except (TypeError, ValueError):
            importance = 0.0
        importance = max(0.0, min(1.0, importance))

        confidence = w.nominatim_base + w.nominatim_importance_weight * importance
        if extra.get("osm_id"):
            confidence += w.nominatim_osm_id_bonus
        if result.components.street_number and result.components.street_name:
            confidence += w.nominatim_street_bonus
        return confidence

    def _score_default(self, result: RawGeocodeResult) -> float:
        w = self.weights
        confidence = w.default_base
        components = result.components
        if components.street_number and components.street_name:
            confidence += w.street_bonus
        if components.city and components.country:
            confidence += w.locality_bonus
        return confidence
