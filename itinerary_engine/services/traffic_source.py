"""Classify where a visitor came from using click ids, UTM tags and the referrer."""

from __future__ import annotations

from typing import Final
from urllib.parse import urlsplit

SEARCH_ENGINES: Final = frozenset({"google", "bing", "yahoo", "duckduckgo", "ecosia", "baidu", "yandex"})
AI_PLATFORMS: Final = frozenset({"chatgpt", "perplexity", "claude", "gemini", "copilot", "searchgpt", "ai"})
SOCIAL_PLATFORMS: Final = frozenset({"facebook", "instagram", "linkedin", "twitter", "x", "pinterest", "tiktok", "youtube"})
EMAIL_SOURCES: Final = frozenset({"email", "newsletter", "mailchimp"})
PAID_MEDIUMS: Final = frozenset({"cpc", "ppc", "paid"})

# Matched as substrings of the referrer hostname, in this order.
REFERRER_SEARCH_ENGINES: Final = ("google.com", "bing.com", "yahoo.com", "duckduckgo.com", "ecosia.org", "baidu.com", "yandex.com")
REFERRER_AI_PLATFORMS: Final = ("chatgpt.com", "chat.openai.com", "perplexity.ai", "claude.ai", "gemini.google.com", "copilot.microsoft.com")
REFERRER_SOCIAL: Final = ("facebook.com", "instagram.com", "linkedin.com", "twitter.com", "x.com", "pinterest.com", "tiktok.com", "youtube.com", "t.co")


def _referrer_hostname(referrer: str) -> str | None:
  try:
    parts = urlsplit(referrer.strip())
  except ValueError:
    return None
  if not parts.scheme or not parts.hostname:
    return None
  return parts.hostname


def detect_traffic_source(*, gclid: str | None = None, gbraid: str | None = None, wbraid: str | None = None, utm_source: str | None = None, utm_medium: str | None = None, referrer: str | None = None) -> str:
  """Return one of google_ads, paid_other, organic_search, ai_search, social, email, partner_referral, other, referral, direct."""
  if gclid or gbraid or wbraid:
    return "google_ads"

  if utm_source:
    source = utm_source.lower()
    medium = (utm_medium or "").lower()
    if medium in PAID_MEDIUMS:
      return "paid_other"
    if source in SEARCH_ENGINES:
      return "organic_search"
    if source in AI_PLATFORMS:
      return "ai_search"
    if source in SOCIAL_PLATFORMS:
      return "social"
    if source in EMAIL_SOURCES:
      return "email"
    if source == "partner":
      return "partner_referral"
    return "other"

  hostname = _referrer_hostname(referrer) if referrer else None
  if hostname is not None:
    if any(domain in hostname for domain in REFERRER_SEARCH_ENGINES):
      return "organic_search"
    if any(domain in hostname for domain in REFERRER_AI_PLATFORMS):
      return "ai_search"
    if any(domain in hostname for domain in REFERRER_SOCIAL):
      return "social"
    return "referral"

  return "direct"
