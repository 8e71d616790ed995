"""
Deterministic candidate extraction for bill emails.

`extract_candidates` scans sender, subject and cleaned body for money amounts, due dates and
vendor names, scores each by nearby keywords, and decides whether the email should be skipped
(promotional, payment confirmation, no amount, weak bill signal). It performs no I/O.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation

from duezo.core.config import settings
from duezo.modules.extraction.preprocess import extract_context

SKIP_PROMOTIONAL = "promotional"
SKIP_PAYMENT_CONFIRMATION = "payment_confirmation"
SKIP_NO_AMOUNT = "no_amount_found"
SKIP_BELOW_THRESHOLD = "below_threshold"

AMOUNT_MIN = Decimal("0.01")
AMOUNT_MAX = Decimal("50000")
AMOUNT_ROUND_SUSPICIOUS_ABOVE = Decimal("5000")
PAST_DATE_ROLLOVER_DAYS = 30


def _kw(keyword: str) -> re.Pattern[str]:
    # keywords match on letter boundaries so "sale" does not hit "wholesale"
    return re.compile(r"(?<![a-z])" + re.escape(keyword) + r"(?![a-z])", re.I)


PROMOTIONAL_KEYWORDS = [
    "offer awaits",
    "welcome offer",
    "special offer",
    "limited time",
    "exclusive offer",
    "discount",
    "coupon",
    "promo code",
    "promocode",
    "% off",
    "off your",
    "deal",
    "deals",
    "sale",
    "flash sale",
    "clearance",
    "free shipping",
    "free gift",
    "earn rewards",
    "bonus points",
    "cashback",
    "cash back",
    "redeem",
    "claim your",
    "don't miss",
    "act now",
    "hurry",
    "expires soon",
    "last chance",
    "still thinking",
    "left in cart",
    "cart reminder",
    "forgot something",
    "come back",
    "we miss you",
    "unsubscribe",
    "marketing",
    "newsletter",
    "price drop",
    "save up to",
    "buy now",
    "shop now",
    "order now",
]

STRONG_PROMO_SUBJECT_INDICATORS = [
    "% off",
    "discount",
    "coupon",
    "deal",
    "deals",
    "sale",
    "free gift",
    "promo code",
    "don't miss",
    "limited time",
    "act now",
    "hurry",
    "left in cart",
    "still thinking",
    "come back",
    "we miss you",
]

PAYMENT_CONFIRMATION_KEYWORDS = [
    "you canceled",
    "you cancelled",
    "payment canceled",
    "payment cancelled",
    "autopay canceled",
    "autopay cancelled",
    "automatic payment canceled",
    "automatic payment cancelled",
    "cancellation confirmed",
    "successfully canceled",
    "successfully cancelled",
    "payment received",
    "payment successful",
    "thank you for your payment",
    "payment confirmation",
    "payment processed",
    "we received your payment",
    "your payment has been",
    "transaction complete",
    "paid in full",
]

BILL_SIGNALS = [
    "amount due",
    "minimum payment",
    "payment due",
    "due date",
    "statement",
    "invoice",
    "billing",
    "past due",
    "balance due",
    "total due",
    "autopay",
    "auto pay",
    "automatic payment",
    "scheduled payment",
    "new balance",
    "current balance",
    "your bill",
]

# (keywords, points per hit, cap)
BILL_KEYWORD_TIERS: list[tuple[list[str], float, float]] = [
    (
        [
            "amount due",
            "payment due",
            "bill is ready",
            "your bill",
            "invoice",
            "statement ready",
            "pay now",
            "due date",
            "minimum payment",
            "account balance",
            "total due",
            "balance due",
            "renews soon",
            "will renew",
            "subscription renew",
            "policy payment",
            "payment is due",
            "is due on",
        ],
        0.3,
        0.6,
    ),
    (
        [
            "billing statement",
            "payment reminder",
            "autopay",
            "auto-pay",
            "scheduled payment",
            "payment confirmation",
            "monthly statement",
            "your statement",
            "payment notice",
            "upcoming payment",
            "renews on",
            "will be charged",
            "next payment",
            "premium due",
        ],
        0.15,
        0.3,
    ),
    (
        [
            "account",
            "billing",
            "payment",
            "subscription",
            "renewal",
            "charged",
            "transaction",
            "policy",
            "premium",
        ],
        0.05,
        0.15,
    ),
]

AMOUNT_KEYWORD_SCORES: list[tuple[re.Pattern[str], float]] = [
    (re.compile(p, re.I), s)
    for p, s in (
        (r"amount\s*due", 4),
        (r"payment\s*due", 4),
        (r"total\s*due", 4),
        (r"balance\s*due", 4),
        (r"new\s*balance", 3.5),
        (r"statement\s*balance", 3),
        (r"current\s*balance", 2.5),
        (r"total\s*amount", 2.5),
        (r"pay\s*this\s*amount", 4),
        (r"total\s*balance", 3),
        (r"total(?![a-z])", 1.5),
        (r"(?<![a-z])due(?![a-z])", 1),
        (r"owe", 1.5),
        (r"minimum\s*payment", -5),
        (r"min\.?\s*(?:payment\s*)?due", -5),
        (r"minimum\s*due", -5),
        (r"minimum\s*amount", -5),
        (r"previous\s*balance", -4),
        (r"prior\s*balance", -3),
        (r"last\s*statement", -3),
        (r"payments?\s*:?\s*-", -3),
        (r"credits?\s*:?\s*-", -3),
        (r"credit", -2),
        (r"refund", -4),
        (r"cashback", -2),
        (r"reward", -1.5),
        (r"available", -1.5),
        (r"limit", -1.5),
        (r"interest\s*charge", -1),
    )
]

DATE_KEYWORD_SCORES: list[tuple[re.Pattern[str], float]] = [
    (re.compile(p, re.I), s)
    for p, s in (
        (r"due\s*(?:date|on|by)?", 3),
        (r"payment\s*due", 3),
        (r"pay\s*by", 3),
        (r"due\s*by", 3),
        (r"before", 2),
        (r"auto\s*pay", 2),
        (r"scheduled", 1.5),
        (r"debit\s*date", 2),
        (r"draft\s*date", 2),
        (r"statement\s*(?:date|closing)", -2),
        (r"closing\s*date", -2),
        (r"posted", -1.5),
        (r"transaction\s*date", -1.5),
        (r"as\s*of", -1),
        (r"through", -1),
    )
]

_AMT = r"([\d,]+\.?\d{0,2})(?![/\-]?\d)"

TOTAL_AMOUNT_PATTERNS = [
    re.compile(p, re.I)
    for p in (
        r"(?:total\s*(?:due|balance|amount|owed)?|statement\s*balance|new\s*balance|current\s*balance"
        r"|amount\s*due|balance\s*due)[:\s]*\$?\s*" + _AMT,
        r"\$\s*" + _AMT + r"\s*(?:total|due|owed|balance)",
        r"payment\s*(?:amount)?[:\s]*\$?\s*" + _AMT,
        r"current\s*account\s*balance[:\s]*\$?\s*" + _AMT,
    )
]

MINIMUM_AMOUNT_PATTERNS = [
    re.compile(p, re.I)
    for p in (
        r"(?:minimum|min\.?)\s*(?:payment|due|amount)?[:\s]*\$?\s*" + _AMT,
        r"\$\s*" + _AMT + r"\s*(?:minimum|min)",
    )
]

GENERAL_AMOUNT_PATTERNS = [
    re.compile(p, re.I)
    for p in (
        r"\$\s*" + _AMT,
        r"(?:amount|total|due|balance|payment)[:\s]*\$?\s*" + _AMT,
        r"(?:USD|US\$)\s*" + _AMT,
    )
]

_PATTERN_PRIORITY = {"total": 0, "general": 1, "minimum": 2}

_MONTH = (
    r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|jun(?:e)?|jul(?:y)?|aug(?:ust)?"
    r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\.?"
)
_MONTH_DAY_OPT_YEAR = _MONTH + r"\s+\d{1,2}(?:st|nd|rd|th)?(?:,?\s*\d{4})?"
_MONTH_DAY_YEAR = _MONTH + r"\s+\d{1,2}(?:st|nd|rd|th)?,?\s*\d{4}"
_NUMERIC_FULL = r"\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}"
_NUMERIC_OPT_YEAR = r"\d{1,2}[/\-]\d{1,2}(?:[/\-]\d{2,4})?"

DATE_PATTERNS = [
    re.compile(p, re.I)
    for p in (
        r"(?:due|payment)\s*(?:date|on)?[:\s]*?(" + _MONTH_DAY_YEAR + "|" + _NUMERIC_FULL + ")",
        r"due\s+on[:\s]*?(" + _MONTH_DAY_OPT_YEAR + "|" + _NUMERIC_OPT_YEAR + ")",
        r"\bdue\s+(" + _MONTH_DAY_OPT_YEAR + "|" + _NUMERIC_OPT_YEAR + ")",
        r"payment\s*(?:date|due)?[:\s]+(" + _NUMERIC_FULL + "|" + _MONTH_DAY_OPT_YEAR + ")",
        r"(?:by|before)\s+(" + _MONTH_DAY_OPT_YEAR + "|" + _NUMERIC_OPT_YEAR + ")",
        r"scheduled\s+(?:for|on)\s+(" + _MONTH_DAY_OPT_YEAR + "|" + _NUMERIC_OPT_YEAR + ")",
        r"(?:debit|draft|withdrawal|auto\s*pay)\s*(?:date)?[:\s]+("
        + _NUMERIC_FULL
        + "|"
        + _MONTH_DAY_OPT_YEAR
        + ")",
        r"due\s+in\s+(\d{1,3})\s+days?",
        r"\$[\d,]+\.?\d*\s+(" + _MONTH_DAY_OPT_YEAR + "|" + _NUMERIC_FULL + ")",
        r"(" + _MONTH_DAY_OPT_YEAR + "|" + _NUMERIC_FULL + r")\s+\$[\d,]+\.?\d*",
        r"\bon\s+(" + _MONTH + r"\s+\d{1,2},\s*\d{4})",
        r"\b(" + _MONTH_DAY_YEAR + r")\b",
        r"\b(" + _NUMERIC_FULL + r")\b",
    )
]

_MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

# (pattern over sender and subject, category, display name or None)
SENDER_PATTERNS: list[tuple[re.Pattern[str], str, str | None]] = [
    (re.compile(p, re.I), c, n)
    for p, c, n in (
        (r"\b(electric|power|energy|pge|sce|duke energy|con edison)\b", "utilities", "Electric"),
        (r"\b(gas|socalgas|national grid)\b", "utilities", "Gas"),
        (r"\b(water|sewer|municipal)\b", "utilities", "Water"),
        (r"netflix", "subscription", "Netflix"),
        (r"spotify", "subscription", "Spotify"),
        (r"hulu", "subscription", "Hulu"),
        (r"disney\+|disneyplus", "subscription", "Disney+"),
        (r"\bhbo\b|max\.com", "subscription", "Max"),
        (r"amazon prime|primevideo", "subscription", "Amazon Prime"),
        (r"apple\s?(tv|music|one|arcade)", "subscription", "Apple"),
        (r"youtube\s?(premium|music)", "subscription", "YouTube Premium"),
        (r"paramount", "subscription", "Paramount+"),
        (r"peacock", "subscription", "Peacock"),
        (r"audible", "subscription", "Audible"),
        (r"adobe", "subscription", "Adobe"),
        (r"microsoft\s?365|office\s?365", "subscription", "Microsoft 365"),
        (r"dropbox", "subscription", "Dropbox"),
        (r"icloud", "subscription", "iCloud"),
        (r"google\s?(one|storage|workspace)", "subscription", "Google One"),
        (r"openai|chatgpt", "subscription", "OpenAI"),
        (r"\b(gym|fitness|planet fitness|la fitness|equinox)\b", "subscription", "Gym"),
        (r"geico", "insurance", "GEICO"),
        (r"progressive", "insurance", "Progressive"),
        (r"state farm", "insurance", "State Farm"),
        (r"allstate", "insurance", "Allstate"),
        (r"liberty mutual", "insurance", "Liberty Mutual"),
        (r"farmers insurance", "insurance", "Farmers"),
        (r"\busaa\b", "insurance", "USAA"),
        (r"insurance|insur", "insurance", None),
        (r"verizon", "phone", "Verizon"),
        (r"at&t|att\.com", "phone", "AT&T"),
        (r"t-mobile|tmobile", "phone", "T-Mobile"),
        (r"\bsprint\b", "phone", "Sprint"),
        (r"mint mobile", "phone", "Mint Mobile"),
        (r"\bvisible\b", "phone", "Visible"),
        (r"\bcricket\b", "phone", "Cricket"),
        (r"comcast|xfinity", "internet", "Xfinity"),
        (r"spectrum", "internet", "Spectrum"),
        (r"cox\s?communications", "internet", "Cox"),
        (r"\bfrontier\b", "internet", "Frontier"),
        (r"centurylink", "internet", "CenturyLink"),
        (r"optimum|altice", "internet", "Optimum"),
        (r"google fiber", "internet", "Google Fiber"),
        (r"starlink", "internet", "Starlink"),
        (r"\bchase\b", "credit_card", "Chase"),
        (r"american express|\bamex\b", "credit_card", "American Express"),
        (r"capital one|capitalone", "credit_card", "Capital One"),
        (r"\bdiscover\b", "credit_card", "Discover"),
        (r"\bciti(bank)?\b", "credit_card", "Citi"),
        (r"bank\s*of\s*america|bankofamerica", "credit_card", "Bank of America"),
        (r"wells fargo", "credit_card", "Wells Fargo"),
        (r"synchrony", "credit_card", "Synchrony"),
        (r"barclays", "credit_card", "Barclays"),
        (
            r"student loan|navient|nelnet|mohela|aidvantage|fedloan",
            "loan",
            "Student Loan",
        ),
        (r"mortgage|home loan", "loan", "Mortgage"),
        (r"auto loan|car payment", "loan", "Auto Loan"),
        (r"\bsofi\b", "loan", "SoFi"),
        (r"\b(rent|landlord|property management|apartment)\b", "rent", None),
    )
]

# (base vendor name, pattern over subject and body, refined name, category override)
PRODUCT_REFINEMENTS: list[tuple[str, re.Pattern[str], str, str | None]] = [
    (b, re.compile(p, re.I), n, c)
    for b, p, n, c in (
        ("Chase", r"auto\s*(?:account|loan|payment|statement)", "Chase Auto", "loan"),
        ("Chase", r"ink\s*business", "Chase Ink Business", None),
        ("Chase", r"sapphire", "Chase Sapphire", None),
        ("Chase", r"freedom", "Chase Freedom", None),
        ("Chase", r"slate", "Chase Slate", None),
        ("Chase", r"amazon.*card|card.*amazon", "Chase Amazon", None),
        ("Chase", r"united.*card|card.*united", "Chase United", None),
        ("Chase", r"southwest.*card|card.*southwest", "Chase Southwest", None),
        ("Chase", r"marriott.*card|card.*marriott", "Chase Marriott", None),
        ("Chase", r"mortgage|home\s*loan", "Chase Mortgage", "loan"),
        ("Chase", r"checking|savings|bank\s*account", "Chase Bank", None),
        ("Capital One", r"venture", "Capital One Venture", None),
        ("Capital One", r"quicksilver", "Capital One Quicksilver", None),
        ("Capital One", r"savor", "Capital One Savor", None),
        ("Capital One", r"auto\s*(?:loan|payment|finance)", "Capital One Auto", "loan"),
        ("Citi", r"custom\s*cash", "Citi Custom Cash", None),
        ("Citi", r"double\s*cash", "Citi Double Cash", None),
        ("Citi", r"strata\s*premier", "Citi Strata Premier", None),
        ("Citi", r"premier(?!\s*miles)", "Citi Premier", None),
        ("Citi", r"simplicity", "Citi Simplicity", None),
        ("Citi", r"costco", "Citi Costco", None),
        ("Citi", r"aadvantage|american\s*airlines", "Citi AAdvantage", None),
        ("American Express", r"platinum", "Amex Platinum", None),
        ("American Express", r"gold\s*card", "Amex Gold", None),
        ("American Express", r"blue\s*cash", "Amex Blue Cash", None),
        ("American Express", r"delta", "Amex Delta", None),
        ("American Express", r"hilton", "Amex Hilton", None),
        ("Bank of America", r"customized\s*cash", "BofA Customized Cash", None),
        ("Bank of America", r"travel\s*rewards", "BofA Travel Rewards", None),
        ("Bank of America", r"unlimited\s*cash", "BofA Unlimited Cash", None),
        ("Discover", r"discover\s*it\b|\bit\s*card", "Discover it", None),
        ("Discover", r"miles", "Discover Miles", None),
    )
]

_PROMO_PATTERNS = [_kw(k) for k in PROMOTIONAL_KEYWORDS]
_STRONG_PROMO_PATTERNS = [_kw(k) for k in STRONG_PROMO_SUBJECT_INDICATORS]

_MARKETING_SENDER_RE = re.compile(
    r"\b(marketing|promo|promos|promotions?|offers?|deals?|newsletters?|news|rewards|shop)\b", re.I
)
_NAME_NOISE_RE = re.compile(r"billing|no-?reply|notifications?|support|team", re.I)
_GENERIC_DOMAIN_RE = re.compile(r"noreply|no-reply|billing|notification|mail|email|gmail", re.I)


@dataclass
class AmountCandidate:
    value: Decimal
    context: str
    position: int
    keyword_score: float
    pattern_type: str
    is_minimum: bool = False
    has_decimals: bool = True


@dataclass
class DateCandidate:
    value: date
    context: str
    position: int
    keyword_score: float
    confidence: float
    pattern_priority: int
    is_relative: bool = False


@dataclass
class NameCandidate:
    value: str
    source: str
    confidence: float
    category: str | None = None


@dataclass
class CandidateSet:
    amounts: list[AmountCandidate] = field(default_factory=list)
    dates: list[DateCandidate] = field(default_factory=list)
    names: list[NameCandidate] = field(default_factory=list)
    keyword_score: float = 0.0
    matched_keywords: list[str] = field(default_factory=list)
    promotional_score: float = 0.0
    is_promotional: bool = False
    has_bill_signal: bool = False
    skip_reason: str | None = None

    @property
    def best_amount(self) -> AmountCandidate | None:
        return self.amounts[0] if self.amounts else None

    @property
    def best_date(self) -> DateCandidate | None:
        return self.dates[0] if self.dates else None

    @property
    def best_name(self) -> NameCandidate | None:
        return self.names[0] if self.names else None

    @property
    def category(self) -> str | None:
        for name in self.names:
            if name.category:
                return name.category
        return None


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _score_context(context: str, table: list[tuple[re.Pattern[str], float]]) -> float:
    return float(sum(score for pattern, score in table if pattern.search(context)))


def _parse_amount(raw: str) -> tuple[Decimal | None, bool]:
    s = raw.replace(",", "").strip()
    if not s or not any(ch.isdigit() for ch in s):
        return None, False
    try:
        value = Decimal(s.rstrip("."))
    except InvalidOperation:
        return None, False
    return value.quantize(Decimal("0.01")), "." in s.rstrip(".")


def is_reasonable_amount(amount: Decimal, *, has_decimals: bool) -> bool:
    if amount < AMOUNT_MIN or amount > AMOUNT_MAX:
        return False
    if amount > AMOUNT_ROUND_SUSPICIOUS_ABOVE and not has_decimals:
        return False
    # zip-code shaped: 10001, 20001 ...
    if amount > 1000 and amount == amount.to_integral_value() and int(amount) % 100 == 1:
        return False
    return True


def extract_amount_candidates(text: str) -> list[AmountCandidate]:
    candidates: list[AmountCandidate] = []
    index_by_value: dict[Decimal, int] = {}

    def _add(raw: str, position: int, pattern_type: str) -> None:
        value, has_decimals = _parse_amount(raw)
        if value is None or not is_reasonable_amount(value, has_decimals=has_decimals):
            return
        prefix = text[max(0, position - 50) : position].lower()
        is_minimum_prefix = bool(re.search(r"minimum|min\.?\s*(?:payment|due|amount)", prefix))
        is_total_prefix = bool(
            re.search(
                r"(?:new|total|statement|current)\s*balance|amount\s*due|total\s*due|balance\s*due",
                prefix,
            )
        )
        scoring_window = text[max(0, position - 50) : min(len(text), position + 20)]
        candidate = AmountCandidate(
            value=value,
            context=extract_context(text, position),
            position=position,
            keyword_score=_score_context(scoring_window, AMOUNT_KEYWORD_SCORES),
            pattern_type=pattern_type,
            is_minimum=(pattern_type == "minimum" or is_minimum_prefix) and not is_total_prefix,
            has_decimals=has_decimals,
        )
        existing = index_by_value.get(value)
        if existing is None:
            index_by_value[value] = len(candidates)
            candidates.append(candidate)
        elif candidate.keyword_score > candidates[existing].keyword_score:
            candidates[existing] = candidate

    for pattern in TOTAL_AMOUNT_PATTERNS:
        for m in pattern.finditer(text):
            dollar = m.group(0).find("$")
            position = m.start() + dollar if dollar >= 0 else m.start(1)
            _add(m.group(1), position, "total")
    for pattern in MINIMUM_AMOUNT_PATTERNS:
        for m in pattern.finditer(text):
            _add(m.group(1), m.start(), "minimum")
    for pattern in GENERAL_AMOUNT_PATTERNS:
        for m in pattern.finditer(text):
            _add(m.group(1), m.start(), "general")

    candidates.sort(key=lambda c: (-c.keyword_score, _PATTERN_PRIORITY[c.pattern_type]))
    return candidates


def parse_date_text(raw: str, *, today: date) -> date | None:
    """
    Parse "Mar 15", "March 15, 2026", "03/15/2026" or "3/15".

    Dates written without a year land in the current year, or the next one when that would put
    them more than 30 days in the past. Explicit years are kept as written.
    """
    cleaned = re.sub(r"\s+", " ", raw.replace(",", " ")).strip().lower()
    year: int | None = None
    month: int | None = None
    day: int | None = None

    m = re.match(r"^([a-z]+)\.? (\d{1,2})(?:st|nd|rd|th)?(?: (\d{4}))?$", cleaned)
    if m:
        month = _MONTHS.get(m.group(1)[:3])
        day = int(m.group(2))
        year = int(m.group(3)) if m.group(3) else None
    else:
        m = re.match(r"^(\d{1,2})[/\-](\d{1,2})(?:[/\-](\d{2,4}))?$", cleaned)
        if m:
            month = int(m.group(1))
            day = int(m.group(2))
            if m.group(3):
                year = int(m.group(3))
                if year < 100:
                    year += 2000 if year < 50 else 1900
    if month is None or day is None:
        return None

    try:
        parsed = date(year or today.year, month, day)
    except ValueError:
        return None
    if year is None and parsed < today - timedelta(days=PAST_DATE_ROLLOVER_DAYS):
        try:
            parsed = parsed.replace(year=parsed.year + 1)
        except ValueError:
            return None
    return parsed


def _is_part_of_date_range(text: str, start: int, raw: str) -> bool:
    window = text[max(0, start - 24) : min(len(text), start + len(raw) + 24)]
    token = re.escape(raw)
    numeric = r"\d{1,2}[/\-]\d{1,2}(?:[/\-]\d{2,4})?"
    month_day = _MONTH + r"\s+\d{1,2}(?:,?\s*\d{4})?"
    other = f"(?:{numeric}|{month_day})"
    return bool(
        re.search(token + r"\s*(?:-|\bto\b|\bthrough\b)\s*" + other, window, re.I)
        or re.search(other + r"\s*(?:-|\bto\b|\bthrough\b)\s*" + token, window, re.I)
    )


def _date_confidence(keyword_score: float, value: date, today: date) -> float:
    confidence = 0.4 + 0.1 * keyword_score
    if value < today:
        confidence -= 0.2
    return round(_clamp(confidence, 0.05, 0.95), 3)


def extract_date_candidates(text: str, *, today: date) -> list[DateCandidate]:
    candidates: list[DateCandidate] = []
    seen: set[date] = set()

    for priority, pattern in enumerate(DATE_PATTERNS):
        for m in pattern.finditer(text):
            raw = m.group(1)
            if raw.isdigit():
                value = today + timedelta(days=int(raw))
                is_relative = True
            else:
                if _is_part_of_date_range(text, m.start(1), raw):
                    continue
                parsed = parse_date_text(raw, today=today)
                if parsed is None:
                    continue
                value = parsed
                is_relative = False
            if value in seen:
                continue
            seen.add(value)
            context = extract_context(text, m.start())
            score = _score_context(context, DATE_KEYWORD_SCORES)
            candidates.append(
                DateCandidate(
                    value=value,
                    context=context,
                    position=m.start(1),
                    keyword_score=score,
                    confidence=_date_confidence(score, value, today),
                    pattern_priority=priority,
                    is_relative=is_relative,
                )
            )

    candidates.sort(key=lambda c: (-c.keyword_score, c.value < today, c.pattern_priority))
    return candidates


def _sender_address(sender: str) -> str | None:
    m = re.search(r"<([^>]+)>", sender) or re.search(r"([^\s<>@]+@[^\s<>@]+)", sender)
    return m.group(1).strip().lower() if m else None


def extract_name_candidates(sender: str, subject: str, body: str) -> list[NameCandidate]:
    candidates: list[NameCandidate] = []
    base_name: str | None = None
    base_category: str | None = None

    for pattern, category, name in SENDER_PATTERNS:
        if pattern.search(sender) or pattern.search(subject):
            base_category = category
            if name:
                base_name = name
                candidates.append(NameCandidate(name, "sender_pattern", 0.8, category))
            break

    if base_name:
        full_text = f"{subject}\n{body}"
        for base, pattern, refined, category in PRODUCT_REFINEMENTS:
            if base == base_name and pattern.search(full_text):
                candidates.insert(
                    0,
                    NameCandidate(refined, "product_refinement", 0.9, category or base_category),
                )
                break

    def _known(value: str) -> bool:
        return any(c.value.lower() == value.lower() for c in candidates)

    address = _sender_address(sender)
    if address and "@" in address:
        domain = address.split("@", 1)[1].split(".")[0]
        if len(domain) > 2 and not _GENERIC_DOMAIN_RE.search(domain):
            domain_name = domain[:1].upper() + domain[1:]
            if not _known(domain_name):
                candidates.append(NameCandidate(domain_name, "sender_domain", 0.5, base_category))

    m = re.match(r"^\s*\"?([^<\"]+)\"?\s*<", sender)
    if m:
        display = re.sub(r"\s+", " ", _NAME_NOISE_RE.sub("", m.group(1))).strip(" -|,")
        if len(display) > 1 and not _known(display):
            candidates.append(NameCandidate(display, "sender_name", 0.6, base_category))

    candidates.sort(key=lambda c: -c.confidence)
    return candidates


def calculate_keyword_score(subject: str, body: str) -> tuple[float, list[str]]:
    text = f"{subject}\n{body}".lower()
    matched: list[str] = []
    total = 0.0
    for keywords, points, cap in BILL_KEYWORD_TIERS:
        tier = 0.0
        for keyword in keywords:
            if keyword in text:
                matched.append(keyword)
                tier += points
                if tier >= cap:
                    break
        total += min(tier, cap)
    return round(min(total, 1.0), 3), matched


def has_bill_signal(subject: str, body: str) -> bool:
    text = f"{subject}\n{body}".lower()
    return any(signal in text for signal in BILL_SIGNALS)


def promotional_score(sender: str, subject: str, body: str, *, bill_signal: bool) -> float:
    score = 0.0
    for pattern in _PROMO_PATTERNS:
        if pattern.search(subject) or pattern.search(body):
            score += 1
    if any(p.search(subject) for p in _STRONG_PROMO_PATTERNS):
        score += 2
    address = _sender_address(sender) or ""
    if _MARKETING_SENDER_RE.search(address.split("@", 1)[0]):
        score += 1
    if bill_signal:
        score -= 3
    return max(score, 0.0)


def _is_payment_confirmation(subject: str, *, bill_signal: bool) -> bool:
    if bill_signal:
        return False
    subject_lower = re.sub(r"\s+", " ", subject.lower())
    return any(keyword in subject_lower for keyword in PAYMENT_CONFIRMATION_KEYWORDS)


def _has_strong_pairing(amounts: list[AmountCandidate], dates: list[DateCandidate]) -> bool:
    if not amounts or not dates:
        return False
    return amounts[0].keyword_score >= 2.5 and dates[0].keyword_score >= 2


def extract_candidates(
    sender: str,
    subject: str,
    cleaned_text: str,
    *,
    today: date | None = None,
) -> CandidateSet:
    today = today or date.today()
    sender = sender or ""
    subject = subject or ""
    body = cleaned_text or ""
    full_text = f"{subject}\n{body}"

    bill_signal = has_bill_signal(subject, body)
    keyword_score, matched = calculate_keyword_score(subject, body)
    promo = promotional_score(sender, subject, body, bill_signal=bill_signal)

    result = CandidateSet(
        keyword_score=keyword_score,
        matched_keywords=matched,
        promotional_score=promo,
        is_promotional=promo >= settings.promotional_threshold,
        has_bill_signal=bill_signal,
    )
    if result.is_promotional:
        result.skip_reason = SKIP_PROMOTIONAL
        return result
    if _is_payment_confirmation(subject, bill_signal=bill_signal):
        result.skip_reason = SKIP_PAYMENT_CONFIRMATION
        return result

    result.amounts = extract_amount_candidates(full_text)
    result.dates = extract_date_candidates(full_text, today=today)
    result.names = extract_name_candidates(sender, subject, body)

    if not result.amounts:
        result.skip_reason = SKIP_NO_AMOUNT
    elif keyword_score < settings.min_keyword_score and not _has_strong_pairing(
        result.amounts, result.dates
    ):
        result.skip_reason = SKIP_BELOW_THRESHOLD
    return result


def amount_confidence(candidate: AmountCandidate | None) -> float:
    if candidate is None:
        return 0.0
    confidence = 0.45 + 0.1 * candidate.keyword_score
    if candidate.is_minimum:
        confidence -= 0.25
    return round(_clamp(confidence, 0.05, 0.95), 3)
