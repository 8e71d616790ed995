from __future__ import annotations

import re
from dataclasses import dataclass
from html import unescape
from urllib.parse import urlsplit

MAX_LINK_CANDIDATES = 10
MIN_LINK_SCORE = 2
VENDOR_FALLBACK_CONFIDENCE = 0.9
_ANCHOR_SCORE_CEILING = 5

VENDOR_PAYMENT_URLS: dict[str, str] = {
    # credit cards
    "chase": "https://secure.chase.com/web/auth/dashboard",
    "citi": "https://online.citi.com/",
    "capital one": "https://myaccounts.capitalone.com/",
    "american express": "https://www.americanexpress.com/en-us/account/login",
    "amex": "https://www.americanexpress.com/en-us/account/login",
    "discover": "https://card.discover.com/",
    "bank of america": "https://www.bankofamerica.com/online-banking/sign-in/",
    "wells fargo": "https://connect.secure.wellsfargo.com/auth/login",
    "synchrony": "https://www.synchrony.com/",
    # insurance
    "progressive": "https://www.progressive.com/",
    "geico": "https://www.geico.com/login/",
    "state farm": "https://proofing.statefarm.com/",
    "allstate": "https://myaccount.allstate.com/",
    "liberty mutual": "https://www.libertymutual.com/login",
    "usaa": "https://www.usaa.com/inet/wc/login",
    # utilities
    "txu": "https://www.txu.com/",
    "txu energy": "https://www.txu.com/",
    "atmos energy": "https://www.atmosenergy.com/myaccount",
    "pg&e": "https://www.pge.com/en/account/dashboard.html",
    "pge": "https://www.pge.com/en/account/dashboard.html",
    "southern california edison": "https://www.sce.com/mysce/myaccount",
    "duke energy": "https://www.duke-energy.com/my-account/sign-in",
    "con edison": "https://www.coned.com/en/login",
    # phone and internet
    "verizon": "https://www.verizon.com/signin",
    "at&t": "https://www.att.com/acctmgmt/login",
    "t-mobile": "https://my.t-mobile.com/",
    "tmobile": "https://my.t-mobile.com/",
    "xfinity": "https://customer.xfinity.com/#/billing",
    "comcast": "https://customer.xfinity.com/#/billing",
    "spectrum": "https://www.spectrum.net/account",
    "cox": "https://www.cox.com/resaccount/sign-in.html",
    # subscriptions
    "netflix": "https://www.netflix.com/youraccount",
    "spotify": "https://www.spotify.com/account/",
    "disney": "https://www.disneyplus.com/account",
    "hulu": "https://secure.hulu.com/account",
    "youtube": "https://www.youtube.com/paid_memberships",
    "amazon prime": "https://www.amazon.com/gp/primecentral",
    # loans
    "toyota financial": "https://www.toyotafinancial.com/",
    "ford credit": "https://www.ford.com/finance/account/",
    "ally": "https://www.ally.com/auto/signin/",
    "navient": "https://www.navient.com/loan-servicing/",
    "nelnet": "https://www.nelnet.com/",
    "mohela": "https://www.mohela.com/",
}

URL_SHORTENERS: frozenset[str] = frozenset(
    {
        "bit.ly",
        "bitly.com",
        "t.co",
        "tinyurl.com",
        "goo.gl",
        "ow.ly",
        "is.gd",
        "buff.ly",
        "adf.ly",
        "j.mp",
        "tiny.cc",
        "lnkd.in",
        "db.tt",
        "qr.ae",
        "cutt.ly",
        "rebrand.ly",
        "shorturl.at",
    }
)

PAYMENT_LINK_KEYWORDS: list[tuple[re.Pattern[str], int]] = [
    (re.compile(p, re.I), score)
    for p, score in (
        (r"pay\s*now", 5),
        (r"make\s*(?:a\s*)?payment", 5),
        (r"pay\s*(?:your\s*)?bill", 5),
        (r"pay\s*online", 5),
        (r"pay\s*balance", 4),
        (r"submit\s*payment", 4),
        (r"one[- ]?time\s*payment", 4),
        (r"view\s*(?:and\s*)?pay", 4),
        (r"(?:sign|log)\s*in\s*to\s*pay", 4),
        (r"view\s*(?:your\s*)?bill", 3),
        (r"manage\s*payment", 3),
        (r"payment\s*options", 3),
        (r"auto[- ]?pay", 3),
        (r"set\s*up\s*payment", 3),
        (r"view\s*(?:your\s*)?account", 2),
        (r"account\s*details", 1),
        (r"my\s*account", 1),
        (r"view\s*statement", 1),
        (r"billing", 1),
    )
]

PAYMENT_LINK_JUNK_PATTERNS: list[re.Pattern[str]] = [
    re.compile(p, re.I)
    for p in (
        r"unsubscribe",
        r"opt[- ]?out",
        r"email\s*preferences",
        r"manage\s*(?:email\s*)?subscriptions?",
        r"notification\s*settings",
        r"privacy",
        r"terms\s*(?:of\s*service|and\s*conditions|of\s*use)",
        r"\blegal\b",
        r"facebook|twitter|instagram|linkedin|youtube|tiktok|pinterest",
        r"contact\s*us",
        r"customer\s*(?:support|service)",
        r"help\s*center",
        r"\bfaq\b",
        r"app\s*store|google\s*play",
        r"download\s*(?:the\s*)?app",
        r"refer\s*a\s*friend",
        r"shop\s*now",
        r"learn\s*more",
        r"read\s*more",
        r"view\s*(?:in\s*)?browser",
        r"web\s*version",
    )
]

_TRACKING_HOST_PREFIXES = ("click.", "track.", "email.", "links.", "pixel.")
_BLOCKED_PATH_RE = re.compile(
    r"(\.pdf$|/pdf\b|/document|/download|attachment|unsubscribe|preferences|/pixel|/open\.gif)",
    re.I,
)

_ANCHOR_RE = re.compile(
    r"""(?is)<a\b[^>]*?\bhref\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s>]+))[^>]*>(.*?)</a\s*>"""
)


@dataclass(frozen=True)
class PaymentLinkCandidate:
    url: str
    anchor_text: str
    score: int
    domain: str
    position: int

    @property
    def confidence(self) -> float:
        return min(1.0, self.score / _ANCHOR_SCORE_CEILING)


def _host(url: str) -> str | None:
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    host = (parts.hostname or "").lower()
    return host or None


def _is_shortener(host: str) -> bool:
    return any(host == s or host.endswith("." + s) for s in URL_SHORTENERS)


def is_valid_payment_url(url: str | None) -> bool:
    """True for https links that plausibly land on a payment page."""
    if not url:
        return False
    candidate = url.strip()
    try:
        parts = urlsplit(candidate)
    except ValueError:
        return False
    if parts.scheme.lower() != "https":
        return False
    host = (parts.hostname or "").lower()
    if not host or "." not in host:
        return False
    if _is_shortener(host):
        return False
    if host.startswith(_TRACKING_HOST_PREFIXES):
        return False
    if _BLOCKED_PATH_RE.search(parts.path) or _BLOCKED_PATH_RE.search(parts.query):
        return False
    return True


def _normalize_vendor(name: str) -> str:
    return re.sub(r"\s+", " ", (name or "").lower()).strip()


def get_fallback_payment_url(vendor_name: str | None) -> str | None:
    nv = _normalize_vendor(vendor_name or "")
    if not nv:
        return None
    for key in sorted(VENDOR_PAYMENT_URLS, key=len, reverse=True):
        if re.search(r"(?<![a-z0-9])" + re.escape(key) + r"(?![a-z0-9])", nv):
            return VENDOR_PAYMENT_URLS[key]
    return None


def _anchor_text(inner_html: str) -> str:
    text = re.sub(r"(?s)<[^>]+>", " ", inner_html)
    return re.sub(r"\s+", " ", unescape(text)).strip()


def _is_junk(anchor_text: str, url: str) -> bool:
    return any(p.search(anchor_text) or p.search(url) for p in PAYMENT_LINK_JUNK_PATTERNS)


def _link_score(anchor_text: str) -> int:
    return sum(score for pattern, score in PAYMENT_LINK_KEYWORDS if pattern.search(anchor_text))


def extract_payment_link_candidates(body_html: str | None) -> list[PaymentLinkCandidate]:
    if not body_html or not body_html.strip():
        return []

    out: list[PaymentLinkCandidate] = []
    seen: set[str] = set()
    for position, m in enumerate(_ANCHOR_RE.finditer(body_html)):
        href = unescape(next(g for g in m.groups()[:3] if g is not None) or "").strip()
        if not href.lower().startswith(("http://", "https://")):
            continue
        key = href.lower()
        if key in seen:
            continue
        seen.add(key)

        text = _anchor_text(m.group(4) or "")
        if _is_junk(text, href):
            continue
        score = _link_score(text)
        if score < MIN_LINK_SCORE:
            continue
        host = _host(href)
        if not host or _is_shortener(host):
            continue
        out.append(
            PaymentLinkCandidate(
                url=href, anchor_text=text[:200], score=score, domain=host, position=position
            )
        )

    out.sort(key=lambda c: (-c.score, c.position))
    return out[:MAX_LINK_CANDIDATES]


def resolve_payment_url(
    candidates: list[PaymentLinkCandidate] | list[str],
    vendor_name: str | None,
) -> tuple[str | None, float]:
    """
    Pick a payment URL: first valid candidate link, else the vendor fallback table.

    Plain string candidates (e.g. a link proposed by the AI pass) count as fully confident;
    callers scale that down themselves when they know better.
    """
    for c in candidates:
        if isinstance(c, PaymentLinkCandidate):
            if is_valid_payment_url(c.url):
                return c.url, c.confidence
        elif is_valid_payment_url(c):
            return c.strip(), 1.0
    fallback = get_fallback_payment_url(vendor_name)
    if fallback:
        return fallback, VENDOR_FALLBACK_CONFIDENCE
    return None, 0.0
