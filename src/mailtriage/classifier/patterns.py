"""Static pattern tables shared by the pre-filter and sender type detector.

Everything in this module is immutable data: sender address regexes,
domain and prefix lookup tables, bulk-mail-service (ESP) signatures and the
content regex families. Adding a pattern means adding an entry here, never
a new branch in the classifiers.

Regexes use the `regex` library so that content matching can run with a
timeout (passed at match time, not compile time).
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Literal

import regex

# Regex timeout for security (used in match operations)
REGEX_TIMEOUT = 1.0

BroadcastSubtype = Literal[
    "newsletter_author",
    "company_newsletter",
    "digest_service",
    "transactional",
]

# Category taxonomy shared by the pre-filter, analyzer and suggestions
EMAIL_CATEGORIES: tuple[str, ...] = (
    "newsletters_general",
    "news_politics",
    "product_updates",
    "local",
    "shopping",
    "travel",
    "finance",
    "family_kids_school",
    "family_health_appointments",
    "client_pipeline",
    "business_work_general",
    "personal_friends_family",
)

# Platform labels that exclude a message from analysis entirely
DEFAULT_EXCLUDED_LABELS: tuple[str, ...] = ("SPAM", "TRASH", "DRAFT")

# ---------------------------------------------------------------------------
# Pre-filter tables
# ---------------------------------------------------------------------------

# Fully automated sender addresses (matched against the lowercased address)
AUTOMATED_SENDER_PATTERNS: tuple[regex.Pattern[str], ...] = tuple(
    regex.compile(pattern)
    for pattern in (
        r"^no-?reply@",
        r"^noreply@",
        r"^do-?not-?reply@",
        r"^mailer-daemon@",
        r"^postmaster@",
        r"^bounce@",
        r"^notifications?@",
        r"^alerts?@",
        r"^auto@",
        r"^automated@",
    )
)

AUTO_CATEGORIZE_DOMAINS: MappingProxyType[str, str] = MappingProxyType(
    {
        # Shopping (orders, shipping, retail promos)
        "amazon.com": "shopping",
        "marketing.amazon.com": "shopping",
        "target.com": "shopping",
        "walmart.com": "shopping",
        "bestbuy.com": "shopping",
        "kohls.com": "shopping",
        "macys.com": "shopping",
        "nordstrom.com": "shopping",
        "gap.com": "shopping",
        "oldnavy.com": "shopping",
        "bananarepublic.com": "shopping",
        "etsy.com": "shopping",
        "ebay.com": "shopping",
        "wish.com": "shopping",
        "aliexpress.com": "shopping",
        "groupon.com": "shopping",
        "retailmenot.com": "shopping",
        "usps.com": "shopping",
        "ups.com": "shopping",
        "fedex.com": "shopping",
        "dhl.com": "shopping",
        # Newsletters and curated digests
        "substack.com": "newsletters_general",
        "substackinc.com": "newsletters_general",
        "medium.com": "newsletters_general",
        "morningbrew.com": "newsletters_general",
        "thehustle.co": "newsletters_general",
        "ycombinator.com": "newsletters_general",
        "quora.com": "newsletters_general",
        "twitter.com": "newsletters_general",
        "x.com": "newsletters_general",
        # News
        "axios.com": "news_politics",
        "thedailybeast.com": "news_politics",
        "nytimes.com": "news_politics",
        "washingtonpost.com": "news_politics",
        "wsj.com": "news_politics",
        "bloomberg.com": "news_politics",
        # Product updates
        "techcrunch.com": "product_updates",
        "theverge.com": "product_updates",
        "wired.com": "product_updates",
        # Finance
        "paypal.com": "finance",
        "venmo.com": "finance",
        "stripe.com": "finance",
        "square.com": "finance",
        "intuit.com": "finance",
        "turbotax.com": "finance",
        "chase.com": "finance",
        "bankofamerica.com": "finance",
        "wellsfargo.com": "finance",
        "capitalone.com": "finance",
        "discover.com": "finance",
        "americanexpress.com": "finance",
        "citi.com": "finance",
        "irs.gov": "finance",
        # Local community and events
        "eventbrite.com": "local",
        "meetup.com": "local",
        "evite.com": "local",
        "paperlesspost.com": "local",
        # Work tooling
        "calendar.google.com": "business_work_general",
        "outlook.live.com": "business_work_general",
        "linkedin.com": "business_work_general",
        # Social
        "pinterest.com": "personal_friends_family",
        "facebook.com": "personal_friends_family",
        "facebookmail.com": "personal_friends_family",
        "instagram.com": "personal_friends_family",
        "tiktok.com": "personal_friends_family",
    }
)

# Local-part prefixes, in match order (exact match is checked first)
AUTO_CATEGORIZE_PREFIXES: MappingProxyType[str, str] = MappingProxyType(
    {
        "receipt": "shopping",
        "receipts": "shopping",
        "order": "shopping",
        "orders": "shopping",
        "shipping": "shopping",
        "shipment": "shopping",
        "tracking": "shopping",
        "confirmation": "shopping",
        "confirm": "shopping",
        "invoice": "finance",
        "billing": "finance",
        "payment": "finance",
        "newsletter": "newsletters_general",
        "newsletters": "newsletters_general",
        "digest": "newsletters_general",
        "weekly": "newsletters_general",
        "daily": "newsletters_general",
        "update": "product_updates",
        "updates": "product_updates",
        "promo": "shopping",
        "promos": "shopping",
        "promotions": "shopping",
        "deals": "shopping",
        "sale": "shopping",
        "sales": "shopping",
        "offer": "shopping",
        "offers": "shopping",
        "marketing": "shopping",
        "discount": "shopping",
    }
)

# ---------------------------------------------------------------------------
# Sender type tables
# ---------------------------------------------------------------------------

BROADCAST_DOMAINS: MappingProxyType[str, BroadcastSubtype] = MappingProxyType(
    {
        # Newsletter platforms
        "substack.com": "newsletter_author",
        "substackmail.com": "newsletter_author",
        "beehiiv.com": "newsletter_author",
        "buttondown.email": "newsletter_author",
        "convertkit.com": "newsletter_author",
        "convertkit-mail.com": "newsletter_author",
        "revue.co": "newsletter_author",
        "ghost.io": "newsletter_author",
        "mailchimp.com": "company_newsletter",
        "mail.mailchimp.com": "company_newsletter",
        "sendgrid.net": "company_newsletter",
        "mailgun.org": "company_newsletter",
        "constantcontact.com": "company_newsletter",
        "hubspot.com": "company_newsletter",
        "hubspotemail.net": "company_newsletter",
        "klaviyo.com": "company_newsletter",
        # Social and digest platforms
        "linkedin.com": "digest_service",
        "facebookmail.com": "digest_service",
        "twitter.com": "digest_service",
        "x.com": "digest_service",
        "github.com": "digest_service",
        "medium.com": "digest_service",
        "reddit.com": "digest_service",
        "quora.com": "digest_service",
        # Notification services
        "notifications.google.com": "transactional",
        "googlemail.com": "transactional",
        "amazonses.com": "transactional",
        "postmarkapp.com": "transactional",
        "mandrillapp.com": "transactional",
    }
)

BROADCAST_PREFIXES: MappingProxyType[str, BroadcastSubtype] = MappingProxyType(
    {
        # Transactional
        "noreply": "transactional",
        "no-reply": "transactional",
        "donotreply": "transactional",
        "do-not-reply": "transactional",
        "notifications": "transactional",
        "notification": "transactional",
        "alerts": "transactional",
        "alert": "transactional",
        "mailer-daemon": "transactional",
        "postmaster": "transactional",
        "bounce": "transactional",
        "auto": "transactional",
        "automated": "transactional",
        # Newsletters
        "newsletter": "company_newsletter",
        "newsletters": "company_newsletter",
        "news": "company_newsletter",
        "digest": "digest_service",
        "weekly": "company_newsletter",
        "daily": "company_newsletter",
        "monthly": "company_newsletter",
        "updates": "company_newsletter",
        "update": "company_newsletter",
        "announce": "company_newsletter",
        "announcements": "company_newsletter",
        "bulletin": "company_newsletter",
        # Marketing
        "marketing": "company_newsletter",
        "promo": "company_newsletter",
        "promotions": "company_newsletter",
        "offers": "company_newsletter",
        "deals": "company_newsletter",
        "sales": "company_newsletter",
    }
)

# Separators that end a token in a local part ("news.team", "alerts-eu")
PREFIX_SEPARATORS: tuple[str, ...] = (".", "-", "_")

# Bulk-mail-service names looked for inside delivery headers
ESP_SIGNATURES: tuple[str, ...] = (
    "mailchimp",
    "sendgrid",
    "mailgun",
    "mandrill",
    "postmark",
    "amazonses",
    "ses.amazonaws",
    "constantcontact",
    "hubspot",
    "klaviyo",
    "convertkit",
    "substack",
    "beehiiv",
    "buttondown",
    "campaignmonitor",
    "getresponse",
    "activecampaign",
    "drip",
    "moosend",
    "sendinblue",
    "brevo",
)

# Lowercased header names inspected for ESP signatures
ESP_HEADER_NAMES: tuple[str, ...] = ("received", "x-mailer", "message-id")

LIST_UNSUBSCRIBE_HEADER = "list-unsubscribe"
LIST_ID_HEADER = "list-id"


def _compile_all(*patterns: str) -> tuple[regex.Pattern[str], ...]:
    return tuple(regex.compile(pattern, regex.IGNORECASE) for pattern in patterns)


BROADCAST_CONTENT_PATTERNS = _compile_all(
    # View in browser
    r"view\s+(this\s+)?in\s+(your\s+)?browser",
    r"view\s+(this\s+)?(email\s+)?online",
    r"having\s+trouble\s+viewing",
    r"can'?t\s+see\s+this\s+email",
    r"email\s+not\s+displaying",
    # Unsubscribe
    r"unsubscribe",
    r"manage\s+(your\s+)?preferences",
    r"update\s+(your\s+)?preferences",
    r"email\s+preferences",
    r"opt[\s-]?out",
    r"stop\s+receiving",
    # Subscription notices and merge tags
    r"you('re|\s+are)\s+receiving\s+this",
    r"you\s+signed\s+up",
    r"you\s+subscribed",
    r"this\s+email\s+was\s+sent\s+to",
    r"sent\s+to\s+\{\{",
    r"\{\{email\}\}",
    r"\{\{first_?name\}\}",
    # Footers
    r"copyright\s+\d{4}",
    r"all\s+rights\s+reserved",
    r"privacy\s+policy",
)

COLD_OUTREACH_PATTERNS = _compile_all(
    # Sales
    r"i('d)?\s+(like|love|want)\s+to\s+(schedule|book|set\s+up)\s+a\s+(call|meeting|demo)",
    r"let'?s?\s+(schedule|book|set\s+up)\s+a\s+(quick\s+)?(call|chat|meeting)",
    r"do\s+you\s+have\s+(15|20|30)\s+minutes",
    r"quick\s+question",
    r"reaching\s+out\s+because",
    r"saw\s+(your|that\s+you)",
    r"i\s+came\s+across",
    r"i\s+noticed",
    # Recruiting
    r"exciting\s+opportunity",
    r"perfect\s+(fit|candidate|match)",
    r"your\s+(background|experience|profile)",
    r"i('m)?\s+a\s+recruiter",
    r"talent\s+(acquisition|team)",
    r"hiring\s+(manager|team)",
    # Partnerships
    r"partnership\s+opportunity",
    r"collaboration\s+opportunity",
    r"would\s+you\s+be\s+interested\s+in",
    r"thought\s+you('d)?\s+be\s+interested",
    r"guest\s+post",
    r"link\s+exchange",
)

OPPORTUNITY_PATTERNS = _compile_all(
    r"\bharo\b",
    r"help\s+a\s+reporter",
    r"journalist\s+(query|request)",
    r"media\s+query",
    r"looking\s+for\s+(sources|experts)",
    r"deadline:",
    r"requirements:",
    r"submit\s+your",
    r"call\s+for\s+(entries|submissions|proposals)",
    r"\brfp\b",
    r"request\s+for\s+proposal",
)


# ---------------------------------------------------------------------------
# Address helpers
# ---------------------------------------------------------------------------


def extract_domain(email: str | None) -> str:
    """Return the lowercased domain of an address, or "" if there is none."""
    if not email or "@" not in email:
        return ""
    return email.rsplit("@", 1)[1].strip().lower()


def extract_local_part(email: str | None) -> str:
    """Return the lowercased part before the @, or "" if there is none."""
    if not email or "@" not in email:
        return ""
    return email.rsplit("@", 1)[0].strip().lower()


def parent_domain(domain: str) -> str | None:
    """Two-level parent of a domain (mail.example.com -> example.com).

    Returns None when the domain has no more than two labels.
    """
    parts = domain.split(".")
    if len(parts) <= 2:
        return None
    return ".".join(parts[-2:])
