from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from .models import DerivedViews, Identity, LogRecord, RankingEntry, is_number


def format_duration(seconds: object) -> str:
    """Render a duration as "Xm Ys"; anything that is not a non-negative number is N/A."""
    if not is_number(seconds) or seconds < 0:
        return "N/A"
    total = int(seconds)
    minutes, remainder = divmod(total, 60)
    return f"{minutes}m {remainder}s"


def format_clock(seconds: int) -> str:
    minutes, remainder = divmod(max(0, int(seconds)), 60)
    return f"{minutes:02}:{remainder:02}"


def format_money(amount: object) -> str:
    value = float(amount) if is_number(amount) else 0.0
    return f"${value:.2f}"


def map_link(lat: float | None, lng: float | None) -> str | None:
    if lat is None or lng is None:
        return None
    return f"https://www.openstreetmap.org/?mlat={lat:.5f}&mlon={lng:.5f}#map=14/{lat:.5f}/{lng:.5f}"


class Reporter:
    def __init__(self, tz: ZoneInfo) -> None:
        self.tz = tz

    def format_timestamp(self, timestamp_ms: int | None) -> str:
        if timestamp_ms is None:
            return "unknown time"
        moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).astimezone(self.tz)
        return moment.strftime("%Y-%m-%d - %H:%M")

    def build_leaderboard_lines(self, entries: list[RankingEntry]) -> list[str]:
        return [
            f"{rank}. {entry.username or 'Anonymous'} `{format_duration(entry.duration)}` {format_money(entry.earnings)}"
            for rank, entry in enumerate(entries, start=1)
        ]

    def build_leaderboard_content(self, views: DerivedViews) -> str:
        if views.local_city:
            local_header = f"**Local Top (Near {views.local_city})**"
        else:
            local_header = "**Local Top (Log a break with a city)**"

        local_lines = self.build_leaderboard_lines(views.local_leaderboard)
        if not local_lines:
            local_lines = ["No other breaks here." if views.local_city else "Log a break with a city for local stats."]

        global_lines = self.build_leaderboard_lines(views.global_leaderboard)
        if not global_lines:
            global_lines = ["Be the first global record setter!"]

        return "\n".join([local_header, *local_lines, "", "**Global Top Breakers**", *global_lines])

    def build_history_content(self, identity: Identity, visible: list[LogRecord], total: int) -> str:
        header = f"**Your Recent Breaks - {identity.username}**"
        if total == 0:
            return f"{header}\nYou haven't logged any breaks yet."

        lines = []
        for record in visible:
            # Stored earnings are shown as logged, never recomputed from today's rate.
            line = (
                f"- {self.format_timestamp(record.timestamp)}: "
                f"`{format_duration(record.duration)}` {format_money(record.earnings)}"
            )
            if record.city:
                line += f" | {record.city}"
            lines.append(line)

        if total > len(visible):
            lines.append(f"Use `/history show_all:true` to view all {total} breaks.")
        return "\n".join([header, *lines])

    def build_logged_content(self, record: LogRecord) -> str:
        lines = [
            f"Logged `{format_duration(record.duration)}` worth {format_money(record.earnings)} "
            f"at {format_money(record.current_rate)}/hr.",
        ]
        if record.city:
            lines.append(f"City: {record.city}")
        link = map_link(record.lat, record.lng)
        if link:
            lines.append(f"Map: <{link}>")
        return "\n".join(lines)

    def build_identity_content(self, identity: Identity, rate: float | None) -> str:
        if not identity.is_complete:
            return "No identity yet. Use `/set-rate` to get started or `/recover` with your recovery code."
        rate_text = f"{format_money(rate)}/hr" if rate is not None else "Not set"
        return "\n".join(
            [
                f"Username: **{identity.username}**",
                f"Your rate: {rate_text}",
                f"Recovery code: `{identity.token}`",
                "Keep this code safe! Use it to access your history if you change devices.",
            ]
        )
