"""
Outbound webhook payload.

The service consumes Discord-style webhook bodies:

    {"content": "...",
     "embeds": [{"title": "...",
                 "fields": [{"name": "type", "value": "drop", "inline": true}, ...],
                 "image": {"url": "attachment://image.jpeg"}}]}

The first field of every embed is "type" (the event category), followed by
the common fields player_name, acc_hash, p_v, guid and group_ids. Drops are
sent as one embed per item stack; every other category is one embed.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from drop_relay.core.events import DomainEvent, EventCategory
from drop_relay.ingestion.durations import format_duration

SCREENSHOT_FILENAME = "image.jpeg"
SCREENSHOT_URL = f"attachment://{SCREENSHOT_FILENAME}"


@dataclass
class EmbedField:
    name: str
    value: str
    inline: bool = True

    def to_dict(self) -> dict:
        return {"name": self.name, "value": self.value, "inline": self.inline}


@dataclass
class Embed:
    title: str = ""
    fields: List[EmbedField] = field(default_factory=list)
    image_url: Optional[str] = None

    def add_field(self, name: str, value: Any, inline: bool = True) -> None:
        self.fields.append(EmbedField(name, _field_value(value), inline))

    def get_field(self, name: str) -> Optional[str]:
        for embed_field in self.fields:
            if embed_field.name == name:
                return embed_field.value
        return None

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {
            "title": self.title,
            "fields": [f.to_dict() for f in self.fields],
        }
        if self.image_url:
            data["image"] = {"url": self.image_url}
        return data


@dataclass
class WebhookBody:
    content: str = ""
    embeds: List[Embed] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "content": self.content,
            "embeds": [embed.to_dict() for embed in self.embeds],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    def attach_screenshot(self) -> None:
        """Point the first embed's image at the attached file part."""
        if self.embeds:
            self.embeds[0].image_url = SCREENSHOT_URL

    @property
    def event_type(self) -> Optional[str]:
        if not self.embeds:
            return None
        return self.embeds[0].get_field("type")


def _field_value(value: Any) -> str:
    """Render a field value the way the service expects (JSON-ish scalars)."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# =============================================================================
# Payload builder
# =============================================================================

# (content suffix, embed title) per category
_HEADINGS = {
    EventCategory.DROP: ("received some drops:", "received some drops:"),
    EventCategory.NPC_KILL: ("has killed a boss:", "has killed a boss:"),
    EventCategory.COMBAT_ACHIEVEMENT: ("has completed a new combat task:", ""),
    EventCategory.COLLECTION_LOG: ("received a new collection log item:", "New collection log slot"),
    EventCategory.PET: ("received a pet!", "Pet Drop!"),
    EventCategory.QUEST: ("completed a quest!", "Quest Completed!"),
    EventCategory.LEVEL_UP: ("leveled up!", "Level Up!"),
    EventCategory.XP_MILESTONE: ("reached an XP milestone!", "XP Milestone Reached"),
    EventCategory.XP_UPDATE: ("gained experience", "Experience Update"),
}

# Player-prefixed titles
_PLAYER_TITLES = {EventCategory.DROP, EventCategory.NPC_KILL}


def build_payload(
    event: DomainEvent,
    group_ids: Sequence[str] = (),
    account_hash: Optional[str] = None,
    plugin_version: str = "",
) -> WebhookBody:
    """
    Build the webhook body for an event.

    Args:
        event: Correlated event
        group_ids: Groups the event qualified for (empty for direct sends)
        account_hash: Local account hash
        plugin_version: Reported as p_v

    Returns:
        Payload ready for WebhookClient
    """
    content_suffix, title = _HEADINGS[event.category]
    if event.category in _PLAYER_TITLES:
        title = f"{event.player} {title}"

    body = WebhookBody(content=f"{event.player} {content_suffix}")

    def new_embed() -> Embed:
        embed = Embed(title=title)
        embed.add_field("type", event.category.value)
        embed.add_field("player_name", event.player)
        embed.add_field("acc_hash", account_hash or "")
        embed.add_field("p_v", plugin_version)
        embed.add_field("guid", event.token)
        embed.add_field("group_ids", ",".join(group_ids))
        return embed

    if event.category == EventCategory.DROP:
        for item in event.fields.get("items", []):
            embed = new_embed()
            _add_drop_fields(embed, event, item)
            body.embeds.append(embed)
        if not body.embeds:
            body.embeds.append(new_embed())
    elif event.category == EventCategory.NPC_KILL:
        embed = new_embed()
        _add_kill_fields(embed, event)
        body.embeds.append(embed)
    else:
        embed = new_embed()
        _add_fields(embed, event.fields.items())
        if event.count is not None and "killcount" not in event.fields:
            embed.add_field("kc", event.count)
        body.embeds.append(embed)

    return body


def _add_drop_fields(embed: Embed, event: DomainEvent, item: Dict[str, Any]) -> None:
    embed.add_field("source_type", event.fields.get("source_type", "npc"))
    embed.add_field("item", item.get("item"))
    embed.add_field("id", item.get("id"))
    embed.add_field("quantity", item.get("quantity"))
    embed.add_field("value", item.get("value"))
    embed.add_field("source", event.subject)
    if event.count is not None:
        embed.add_field("killcount", event.count)


def _add_kill_fields(embed: Embed, event: DomainEvent) -> None:
    embed.add_field("boss_name", event.subject)
    if event.duration is not None:
        embed.add_field("kill_time", format_duration(event.duration, precise=True))
        embed.add_field("best_time", format_duration(event.best_duration, precise=True))
    embed.add_field("is_pb", event.is_personal_best)
    embed.add_field("team_size", event.team_size)
    if event.count is not None:
        embed.add_field("killcount", event.count)


def _add_fields(embed: Embed, items: Iterable[tuple]) -> None:
    for name, value in items:
        embed.add_field(name, value)
