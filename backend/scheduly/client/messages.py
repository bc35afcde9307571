from __future__ import annotations

from scheduly.client.events import MutationEvent

ENTITY_LABELS = {
    "candidate": "the candidate",
    "participant": "the participant",
    "response": "the response",
    "meta": "the project details",
    "share": "the share links",
}

ACTION_LABELS = {
    "add": "Adding",
    "update": "Your change to",
    "remove": "Removing",
    "upsert": "Saving",
    "rotate": "Reissuing",
    "invalidate": "Invalidating",
}


def describe_mutation(event: MutationEvent) -> str:
    """User-facing text for a failed mutation; empty for every other phase."""
    entity = ENTITY_LABELS.get(event.entity, "the item")
    action = ACTION_LABELS.get(event.action, ACTION_LABELS["update"])
    if event.phase == "conflict":
        return (
            f"{action} {entity} could not be applied because something changed elsewhere. "
            "The view has been refreshed."
        )
    if event.phase == "error":
        return f"{action} {entity} failed. Please try again later."
    return ""
