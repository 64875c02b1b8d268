"""Derived figures computed from a student's tests."""

from typing import Any, Dict, Iterable, Union

import structlog

logger = structlog.get_logger(__name__)


def percentage_average(tests: Iterable[Dict[str, Any]]) -> Union[int, float]:
    """Mean of mark/outOf as a percentage, rounded to 2 places. 0 without tests."""
    percentages = [float(t["mark"]) / float(t["outOf"]) * 100 for t in tests]
    if not percentages:
        return 0
    return round(sum(percentages) / len(percentages), 2)


class MetricCalculator:
    def __init__(self, tests):
        self.tests = tests

    def average_for(self, student_token: Any) -> Union[int, float]:
        tests = self.tests.for_student(student_token)
        average = percentage_average(tests)
        logger.debug("average_computed", student_id=str(student_token), tests=len(tests), average=average)
        return average
