"""Tracking of a single blinking light source from the events it produces."""

from __future__ import annotations

import math
from typing import Optional

from .types import Event, TrackerOut

UPDATES_PER_ANALYSIS = 200


class TrackedBlob:
    """A circular region of interest that follows the events of one blinking LED."""

    alpha = 0.9
    delta = 0.1
    beta = 0.020
    gamma = 0.01
    max_roi_radius = 16.0

    def __init__(
        self,
        center: tuple[float, float],
        frequency: int,
        detected_at: int,
        radius: float = 5.0,
    ) -> None:
        frequency = int(frequency)
        if frequency == 0:
            raise ValueError("blink frequency must be non-zero")
        self.frequency = frequency
        self.period = float(int(1_000_000 / frequency))
        self.last_update = detected_at
        self.center_x, self.center_y = float(center[0]), float(center[1])
        self.x_center, self.y_center = self.center_x, self.center_y
        self.radius = float(radius)
        self.avg_distance = float(radius)
        self.current_distance = 0.0
        self.distance_sum = 0.0

        self.first = True
        self.update_count = 0
        self.update_count_since_pnp = 0

        self.x_min: Optional[int] = None
        self.x_max: Optional[int] = None
        self.y_min: Optional[int] = None
        self.y_max: Optional[int] = None
        self.size_x = 0
        self.size_y = 0

        self.acc_x = 0
        self.acc_y = 0
        self.acc_time = 0

    @property
    def center(self) -> tuple[float, float]:
        return self.center_x, self.center_y

    def distance_to(self, event: Event) -> float:
        return math.hypot(event.x - self.center_x, event.y - self.center_y)

    def is_event_inside(self, event: Event) -> bool:
        return self.distance_to(event) < self.radius

    def update(self, event: Event) -> bool:
        """Absorb ``event`` if it falls inside the region; report whether it did."""
        distance = self.distance_to(event)
        self.current_distance = distance
        if distance >= self.radius:
            return False

        if self.update_count == UPDATES_PER_ANALYSIS:
            self.cluster_analytics()
            self.first = False
            self.update_count = 0
            self.acc_x = 0
            self.acc_y = 0
            self.acc_time = 0
            self.distance_sum = 0.0
            self.x_min = self.x_max = event.x
            self.y_min = self.y_max = event.y
        elif self.x_min is None:
            self.x_min = self.x_max = event.x
            self.y_min = self.y_max = event.y
        else:
            self.x_min = min(self.x_min, event.x)
            self.x_max = max(self.x_max, event.x)
            self.y_min = min(self.y_min, event.y)
            self.y_max = max(self.y_max, event.y)

        self.distance_sum += distance
        self.last_update = event.t
        self.center_x = (1.0 - self.beta) * self.center_x + self.beta * event.x
        self.center_y = (1.0 - self.beta) * self.center_y + self.beta * event.y
        self.acc_time += event.t
        self.acc_x += event.x
        self.acc_y += event.y
        self.update_count += 1
        self.update_count_since_pnp += 1
        return True

    def cluster_analytics(self) -> None:
        """Refit the region radius to the mean distance of recent events."""
        self.first = True
        if self.update_count < 2:
            return
        self.size_x = self.x_max - self.x_min
        self.size_y = self.y_max - self.y_min
        self.avg_distance = self.distance_sum / self.update_count
        self.radius = min(
            self.max_roi_radius,
            (1.0 - self.gamma) * self.radius + 2.3 * self.gamma * self.avg_distance,
        )

    def output(self) -> TrackerOut:
        return TrackerOut(x=self.center_x, y=self.center_y, r=self.radius, freq=self.frequency)

    def reset_update_count(self) -> None:
        self.update_count_since_pnp = 0