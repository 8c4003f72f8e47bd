"""
Email Rendering
===============
Turns a campaign's subject/body templates into the message one target
receives.

Placeholders are a closed, case-sensitive set in double braces. Recipient
attributes are substituted in both subject and body; ``{{Link}}`` is
substituted in the body only, and an invisible open beacon is appended to
the body. Unknown placeholders are left as they are.

Every function here is pure.
"""

from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

# placeholder -> Target attribute
ATTRIBUTE_PLACEHOLDERS: Dict[str, str] = {
    "{{Name}}": "name",
    "{{Email}}": "email",
    "{{Department}}": "department",
    "{{Role}}": "role",
    "{{Location}}": "location",
    "{{EmployeeID}}": "employee_id",
    "{{Manager}}": "manager",
}

LINK_PLACEHOLDER = "{{Link}}"

BEACON_TAG = '<img src="{url}" width="1" height="1" style="display:none" alt="" />'


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    body: str


def target_attributes(target) -> Dict[str, str]:
    """Attribute mapping for a Target (or any object with the same fields)."""
    return {
        attr: getattr(target, attr, None) or ""
        for attr in ATTRIBUTE_PLACEHOLDERS.values()
    }


def replace_placeholders(text: str, attributes: Mapping[str, Optional[str]]) -> str:
    """Substitute recipient attributes; missing values become empty strings."""
    for placeholder, attr in ATTRIBUTE_PLACEHOLDERS.items():
        text = text.replace(placeholder, attributes.get(attr) or "")
    return text


def render_subject(template: str, attributes: Mapping[str, Optional[str]]) -> str:
    return replace_placeholders(template, attributes)


def render_body(
    template: str,
    attributes: Mapping[str, Optional[str]],
    tracking_link: str,
    beacon_url: str
) -> str:
    """Render the HTML body and append the open beacon at the very end."""
    body = replace_placeholders(template, attributes)
    body = body.replace(LINK_PLACEHOLDER, tracking_link)
    return body + BEACON_TAG.format(url=beacon_url)


def tracking_urls(base_url: str, token: str) -> Tuple[str, str]:
    """(click link, open beacon) for a token under the public base URL."""
    base = base_url.rstrip("/")
    return f"{base}/t/{token}", f"{base}/open/{token}"


def render_message(campaign, target, base_url: str) -> RenderedMessage:
    """Render ``campaign``'s templates for ``target``."""
    attributes = target_attributes(target)
    tracking_link, beacon_url = tracking_urls(base_url, target.token)
    return RenderedMessage(
        subject=render_subject(campaign.email_subject, attributes),
        body=render_body(campaign.email_body, attributes, tracking_link, beacon_url),
    )
