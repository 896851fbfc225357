# action_engine/pattern_matcher.py
"""
Pattern Matcher

Deterministic fallback for when the language model is unavailable or not
trusted. Produces the same action shapes as the AI path, from keyword rules
and fuzzy menu matching, with a fixed confidence per rule family.

Rules are evaluated in order, first match wins:
1. yes/no against an action awaiting confirmation, then explicit order
   changes (cancel, remove, change quantity, edit)
2. menu items, with quantities ("2 caesar salads", "two cokes"), and
   questions about a named item
3. recommendation requests
4. complaints, then order status checks
5. anything else: a conversational reply with no action

Items are matched only against available menu items: exact name first, then
singular/plural tokens, then edit distance (difflib). Prices always come from
the menu.

Confidence never reaches the trusted threshold; this path is by nature less
certain than model-based understanding. `match` never raises.
"""

from __future__ import annotations

import difflib
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .actions import (
    AddItemAction,
    BaseAction,
    CancelOrderAction,
    CheckOrdersAction,
    ClarificationOption,
    ConfirmOrderAction,
    EditOrderAction,
    HandleComplaintAction,
    ItemRef,
    ModifyItemQuantityAction,
    OrderLine,
    ProvideInfoAction,
    RemoveItemAction,
    RequestClarificationAction,
    RequestRecommendationAction,
)
from .config import EngineSettings, settings
from .models import ActionContext, DecisionMetadata, DecisionResult, MenuItemContext

logger = logging.getLogger(__name__)

# Confidence per rule family
CONFIRMATION_CONFIDENCE = 0.7
ITEM_MATCH_CONFIDENCE = 0.6
ORDER_CHANGE_CONFIDENCE = 0.6
KEYWORD_CONFIDENCE = 0.5
VAGUE_CONFIDENCE = 0.4
CHAT_CONFIDENCE = 0.3

WORD_NUMBERS: Dict[str, int] = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
}

AFFIRMATIVE = [
    "yes", "yeah", "yep", "yup", "sure", "ok", "okay", "do it", "go ahead",
    "proceed", "confirm", "add it", "place it", "sounds good", "please do",
    "absolutely", "definitely",
]
NEGATIVE = [
    "no", "nah", "nope", "don't", "dont", "stop", "decline", "skip", "not now",
    "never mind", "nevermind", "cancel that", "cancel it",
]

STOPWORDS = {
    "a", "an", "the", "some", "of", "please", "and", "with", "for", "me", "my",
    "i", "want", "would", "like", "to", "get", "have", "order", "can", "could",
    "x", "more", "also", "too",
}

_ORDER_CUE = re.compile(
    r"\b(i want|i'd like|id like|i would like|i'll have|ill have|i will have|i'll take|"
    r"i will take|can i get|could i get|can i have|could i have|may i have|give me|"
    r"get me|let me have|let me get|add|order|bring me|i'll go with|i will go with)\b"
)
_QUESTION_START = re.compile(r"^(what|whats|what's|how|does|do|is|are|which|tell me|can you tell)\b")
_INFO_WORDS = re.compile(
    r"\b(ingredients?|contain|contains|allergens?|calories|vegan|vegetarian|gluten|"
    r"spicy|what's in|whats in|what is in|made with|tell me about|describe)\b"
)

_CANCEL = re.compile(
    r"\b(cancel|scrap|call off)\b.*\border\b|\b(don'?t|no longer)\s+want\s+(my\s+|the\s+)?order\b"
)
_REMOVE = re.compile(
    r"\b(?:remove|delete|take off|take out|drop|cancel|scrap)\s+(?:the\s+|my\s+|a\s+|an\s+)?(?P<item>.+?)"
    r"(?:\s+(?:from|off)\s+(?:my\s+|the\s+)?order)?$"
)
_WHOLE_ORDER = re.compile(r"^(?:(?:my|the|whole|entire|this)\s+)*(?:order|everything|all|it)$")
_MODIFY = re.compile(
    r"\b(?:change|make|update|switch)\b.*?\b(?:to|it)\s+(?P<qty>\d+)\b"
    r"|\b(?:only|just)\s+(?P<qty2>\d+)\s+(?P<item2>.+)$"
)
_EDIT = re.compile(
    r"\b(change|modify|edit|update|alter)\s+(my\s+|the\s+)?order\b"
    r"|\bcan\s+(i|we)\s+(modify|change|edit|update)\b"
    r"|\b(i|we)\s+(want|need|would like)\s+to\s+(modify|change|edit|update)\b"
    r"|\bi\s+(changed my mind|made a mistake)\b"
)
_RECOMMEND = re.compile(
    r"\b(recommend\w*|suggest\w*|what's good|whats good|what is good|popular|"
    r"best sellers?|chef'?s special|specials?|what should i (get|have|order))\b"
)
_COMPLAINT = re.compile(
    r"\b(cold|burnt|burned|undercooked|raw|stale|wrong order|rude|dirty|hair in|"
    r"complain\w*|terrible|awful|disgusting|taking forever|waited too long|"
    r"been waiting|still waiting)\b"
)
_STATUS = re.compile(
    r"\bcheck\b.*\border|\bshow\b.*\border|\brecent\b.*\border|\bmy\b.*\border"
    r"|\border\b.*\bstatus|\bwhat\b.*\bordered\b|\border\b.*\bhistory"
    r"|\bwhere('?s| is)\b.*\b(order|food)\b|\bhow long\b"
)
_GREETING = re.compile(r"^(hi|hello|hey|good (morning|afternoon|evening))\b")
_THANKS = re.compile(r"\b(thanks|thank you|cheers|appreciate it)\b")


def normalize(text: str) -> str:
    text = (text or "").lower()
    text = text.replace("’", "'")
    text = re.sub(r"[^a-z0-9#'\s-]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def _digits(text: str) -> str:
    return re.sub(
        r"\b(" + "|".join(WORD_NUMBERS) + r")\b",
        lambda m: str(WORD_NUMBERS[m.group(1)]),
        text,
    )


def singular(word: str) -> str:
    if len(word) > 4 and word.endswith("ies"):
        return word[:-3] + "y"
    if len(word) > 4 and word.endswith("oes"):
        return word[:-2]
    if len(word) > 3 and word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word


def _tokens(text: str) -> List[str]:
    return [singular(t) for t in re.findall(r"[a-z0-9']+", text) if t not in STOPWORDS]


def _contains_phrase(text: str, phrases: Sequence[str]) -> bool:
    return any(re.search(r"\b" + re.escape(p) + r"\b", text) for p in phrases)


@dataclass
class _ItemHit:
    item: MenuItemContext
    quantity: int
    exact: bool


class PatternMatcher:
    """
    Rule engine over the raw message. Stateless; one instance can serve
    every restaurant.
    """

    def __init__(self, engine_settings: EngineSettings = settings, fuzzy_threshold: float = 0.8) -> None:
        self.settings = engine_settings
        self.fuzzy_threshold = fuzzy_threshold

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------
    def match(self, message: str, ctx: ActionContext) -> DecisionResult:
        try:
            result = self._match(message, ctx)
        except Exception:  # this path must always produce a reply
            logger.exception("Pattern matching failed for message %r", message[:100])
            result = self._chat(ctx, normalize(message))

        cap = self.settings.fallback_confidence_cap
        if result.confidence > cap:
            result.confidence = cap
        result.used_fallback = True
        result.metadata.path = "fallback"
        return result

    # -------------------------------------------------------------------------
    # Rules
    # -------------------------------------------------------------------------
    def _match(self, message: str, ctx: ActionContext) -> DecisionResult:
        text = normalize(message)

        for rule in (
            self._rule_confirmation,
            self._rule_order_change,
            self._rule_items,
            self._rule_recommendation,
            self._rule_complaint,
            self._rule_status,
        ):
            result = rule(text, ctx)
            if result is not None:
                return result

        return self._chat(ctx, text)

    def _rule_confirmation(self, text: str, ctx: ActionContext) -> Optional[DecisionResult]:
        pending = ctx.pending_action
        if pending is None or len(text.split()) > 6:
            return None

        yes = _contains_phrase(text, AFFIRMATIVE)
        no = _contains_phrase(text, NEGATIVE)
        if yes == no:
            return None

        entities = {"action_id": pending.id, "response": "affirmative" if yes else "negative"}
        if yes:
            return _result(
                pending,
                CONFIRMATION_CONFIDENCE,
                f"Customer confirmed pending {pending.type.value}",
                intent="confirm_pending_action",
                entities=entities,
                reply="Great, I'll take care of that.",
            )
        return _result(
            None,
            CONFIRMATION_CONFIDENCE,
            f"Customer declined pending {pending.type.value}",
            intent="decline_pending_action",
            entities=entities,
            reply="No problem, I won't do that. Is there anything else I can help with?",
        )

    def _rule_order_change(self, text: str, ctx: ActionContext) -> Optional[DecisionResult]:
        latest = ctx.latest_active_order()
        order_id = latest.id if latest else None

        removal = _REMOVE.search(text)
        target = None
        if removal and not _WHOLE_ORDER.match(removal.group("item")):
            target = self._resolve_order_item(removal.group("item"), ctx)
        if target is not None:
            return _result(
                RemoveItemAction(target=target, order_id=order_id, reason="Customer request"),
                ORDER_CHANGE_CONFIDENCE,
                f"Matched removal of {target.name}",
                intent="remove_item",
                entities={"item": target.name},
            )

        if _CANCEL.search(text):
            return _result(
                CancelOrderAction(order_id=order_id, reason="Customer request"),
                ORDER_CHANGE_CONFIDENCE,
                "Matched cancellation keywords",
                intent="cancel_order",
            )

        if removal:
            return _result(
                EditOrderAction(order_id=order_id),
                VAGUE_CONFIDENCE,
                "Removal requested but the item could not be identified",
                intent="edit_order",
            )

        change = _MODIFY.search(_digits(text))
        if change:
            qty = int(change.group("qty") or change.group("qty2"))
            target = self._resolve_order_item(change.group("item2") or text, ctx)
            if target is not None:
                unit = ctx.menu_item(target.menu_item_id)
                return _result(
                    ModifyItemQuantityAction(
                        target=target,
                        new_quantity=qty,
                        order_id=order_id,
                        unit_price=unit.price if unit else None,
                    ),
                    ORDER_CHANGE_CONFIDENCE,
                    f"Matched quantity change of {target.name} to {qty}",
                    intent="modify_item_quantity",
                    entities={"item": target.name, "quantity": qty},
                )

        if _EDIT.search(text):
            return _result(
                EditOrderAction(order_id=order_id),
                KEYWORD_CONFIDENCE,
                "Matched order editing keywords",
                intent="edit_order",
            )
        return None

    def _rule_items(self, text: str, ctx: ActionContext) -> Optional[DecisionResult]:
        numeric = _digits(text)
        has_cue = bool(_ORDER_CUE.search(text))
        hits = self._exact_hits(numeric, ctx.available_items)
        exact = bool(hits)

        if hits:
            leftover = numeric
            for hit in hits:
                leftover = re.sub(r"\b" + re.escape(hit.item.name.lower()) + r"(?:e?s)?\b", " ", leftover)
            leftover_words = [w for w in _tokens(leftover) if not w.isdigit()]
            quantified = any(re.search(r"\b\d+\s+" + re.escape(h.item.name.lower()), numeric) for h in hits)
            is_question = bool(_QUESTION_START.search(text))

            if not has_cue and not quantified and (is_question or _INFO_WORDS.search(text) or len(leftover_words) > 2):
                item = hits[0].item
                return _result(
                    ProvideInfoAction(
                        information_type="ingredients" if _INFO_WORDS.search(text) else "menu_item_details",
                        query=item.name,
                        menu_item_id=item.id,
                    ),
                    KEYWORD_CONFIDENCE,
                    f"Question about {item.name}",
                    intent="provide_info",
                    entities={"item": item.name},
                )
        else:
            phrases = self._quantity_phrases(numeric, has_cue)
            if not phrases:
                return self._unavailable(numeric, ctx)
            resolved, ambiguous = self._fuzzy_hits(phrases, ctx.available_items)
            if ambiguous is not None:
                phrase, options = ambiguous
                return _result(
                    RequestClarificationAction(
                        ambiguous_request=phrase,
                        options=[ClarificationOption(name=o.name, menu_item_id=o.id, description=o.description or None) for o in options],
                    ),
                    VAGUE_CONFIDENCE,
                    f"'{phrase}' matches several menu items",
                    intent="request_clarification",
                )
            if not resolved:
                return self._unavailable(numeric, ctx)
            hits = resolved

        lines = [_line(h.item, h.quantity) for h in hits]
        total = round(sum(line.line_total for line in lines), 2)
        latest = ctx.latest_active_order()

        if ctx.gate.can_modify and latest is not None:
            action: BaseAction = AddItemAction(items=lines, total=total, order_id=latest.id)
        elif len(lines) == 1:
            action = AddItemAction(items=lines, total=total)
        else:
            action = ConfirmOrderAction(items=lines, total=total)

        names = ", ".join(f"{line.quantity}x {line.name}" for line in lines)
        return _result(
            action,
            ITEM_MATCH_CONFIDENCE if exact else VAGUE_CONFIDENCE,
            f"Matched {'menu items' if exact else 'menu items approximately'}: {names}",
            intent="order_items",
            entities={"items": [{"name": line.name, "quantity": line.quantity} for line in lines]},
        )

    def _rule_recommendation(self, text: str, ctx: ActionContext) -> Optional[DecisionResult]:
        if not _RECOMMEND.search(text):
            return None

        dietary = list(ctx.preferences.dietary_restrictions)
        for word in ("vegetarian", "vegan", "gluten-free", "dairy-free"):
            if word in text and word not in dietary:
                dietary.append(word)

        if dietary:
            preference = "dietary"
        elif re.search(r"\b(cheap|budget|affordable)\b", text):
            preference = "price"
        elif "special" in text:
            preference = "chef_special"
        else:
            preference = "popular"

        candidates = ctx.available_items
        if dietary:
            candidates = [
                m for m in candidates
                if all(d in [t.lower() for t in m.dietary_tags] for d in dietary)
            ]
        if preference == "price":
            candidates = sorted(candidates, key=lambda m: m.price)
        else:
            candidates = sorted(candidates, key=lambda m: m.popularity_score, reverse=True)

        return _result(
            RequestRecommendationAction(
                preference_type=preference,
                dietary_restrictions=dietary,
                suggestions=[ClarificationOption(name=m.name, menu_item_id=m.id) for m in candidates[:3]],
            ),
            KEYWORD_CONFIDENCE,
            f"Matched recommendation keywords ({preference})",
            intent="request_recommendation",
        )

    def _rule_complaint(self, text: str, ctx: ActionContext) -> Optional[DecisionResult]:
        found = _COMPLAINT.search(text)
        if not found:
            return None

        word = found.group(1)
        if word in ("rude", "dirty"):
            issue, severity = "service", "high"
        elif word in ("taking forever", "waited too long", "been waiting", "still waiting"):
            issue, severity = "wait_time", "medium"
        elif word == "wrong order":
            issue, severity = "order_accuracy", "high"
        else:
            issue, severity = "food_quality", "high" if word in ("raw", "undercooked", "hair in") else "medium"

        return _result(
            HandleComplaintAction(
                issue_type=issue,
                severity=severity,
                description=text,
                needs_staff_attention=severity == "high",
            ),
            KEYWORD_CONFIDENCE,
            f"Matched complaint keywords ({issue})",
            intent="handle_complaint",
        )

    def _rule_status(self, text: str, ctx: ActionContext) -> Optional[DecisionResult]:
        if not _STATUS.search(text):
            return None
        order_id = re.search(r"#([a-z0-9]{6})\b", text)
        return _result(
            CheckOrdersAction(order_id=order_id.group(1).upper() if order_id else None),
            KEYWORD_CONFIDENCE,
            "Matched order status keywords",
            intent="check_orders",
        )

    def _chat(self, ctx: ActionContext, text: str) -> DecisionResult:
        if _GREETING.search(text):
            reply = f"Hello! Welcome to {ctx.restaurant.name}. What can I get for you today?"
        elif _THANKS.search(text):
            reply = "You're welcome! Let me know if there's anything else you need."
        else:
            reply = (
                "I'm happy to help with the menu, recommendations or your order. "
                "What would you like?"
            )
        return _result(None, CHAT_CONFIDENCE, "No rule matched; conversational reply", intent="chat", reply=reply)

    # -------------------------------------------------------------------------
    # Menu matching
    # -------------------------------------------------------------------------
    @staticmethod
    def _exact_hits(text: str, items: Sequence[MenuItemContext]) -> List[_ItemHit]:
        hits: List[_ItemHit] = []
        taken: List[Tuple[int, int]] = []
        for item in sorted(items, key=lambda m: len(m.name), reverse=True):
            pattern = re.compile(r"(?:\b(\d+)\s+(?:x\s+)?)?\b" + re.escape(item.name.lower()) + r"(?:e?s)?\b")
            found = pattern.search(text)
            if not found:
                continue
            span = found.span()
            if any(span[0] < end and start < span[1] for start, end in taken):
                continue
            taken.append(span)
            quantity = int(found.group(1)) if found.group(1) else 1
            hits.append(_ItemHit(item=item, quantity=quantity, exact=True))
        hits.sort(key=lambda h: text.find(h.item.name.lower()))
        return hits

    @staticmethod
    def _quantity_phrases(text: str, has_cue: bool) -> List[Tuple[int, str]]:
        phrases: List[Tuple[int, str]] = []
        for found in re.finditer(r"\b(\d+)\s+(?:x\s+)?([a-z][a-z' -]*)", text):
            phrase = re.split(r"\b(?:and|with|plus|please|for|to|then)\b|,", found.group(2))[0].strip()
            if phrase:
                phrases.append((int(found.group(1)), phrase))

        if not phrases and has_cue:
            cue = _ORDER_CUE.search(text)
            rest = text[cue.end():] if cue else ""
            for chunk in re.split(r"\b(?:and|plus|then)\b|,", rest):
                chunk = re.sub(r"^\s*(?:an?|some|the)\s+", "", chunk).strip()
                chunk = re.split(r"\b(?:please|for|to|with)\b", chunk)[0].strip()
                if chunk:
                    phrases.append((1, chunk))
        return phrases

    def _fuzzy_hits(
        self, phrases: Sequence[Tuple[int, str]], items: Sequence[MenuItemContext]
    ) -> Tuple[List[_ItemHit], Optional[Tuple[str, List[MenuItemContext]]]]:
        hits: List[_ItemHit] = []
        for quantity, phrase in phrases:
            candidates = self._closest_items(phrase, items)
            if len(candidates) == 1:
                hits.append(_ItemHit(item=candidates[0], quantity=quantity, exact=False))
            elif len(candidates) > 1:
                return hits, (phrase, candidates)
        return hits, None

    def _closest_items(self, phrase: str, items: Sequence[MenuItemContext]) -> List[MenuItemContext]:
        words = _tokens(phrase)
        if not words:
            return []

        scored: List[Tuple[float, MenuItemContext]] = []
        for item in items:
            name_words = _tokens(item.name.lower())
            matched = 0
            for word in words:
                if any(
                    word == nw or difflib.SequenceMatcher(None, word, nw).ratio() >= self.fuzzy_threshold
                    for nw in name_words
                ):
                    matched += 1
            if matched:
                scored.append((matched / len(words), item))
                continue
            ratio = difflib.SequenceMatcher(None, " ".join(words), " ".join(name_words)).ratio()
            if ratio >= self.fuzzy_threshold:
                scored.append((ratio, item))

        if not scored:
            return []
        best = max(score for score, _ in scored)
        return [item for score, item in scored if score == best]

    def _resolve_order_item(self, phrase: str, ctx: ActionContext) -> Optional[ItemRef]:
        phrase = normalize(phrase)
        latest = ctx.latest_active_order()
        if latest is not None:
            for order_item in latest.items:
                name = order_item.name.lower()
                if name in phrase or singular(name) in phrase:
                    return ItemRef(menu_item_id=order_item.menu_item_id, name=order_item.name, order_item_id=order_item.id)

        hits = self._exact_hits(phrase, ctx.menu_items)
        if hits:
            return ItemRef(menu_item_id=hits[0].item.id, name=hits[0].item.name)

        candidates = self._closest_items(phrase, ctx.menu_items)
        if len(candidates) == 1:
            return ItemRef(menu_item_id=candidates[0].id, name=candidates[0].name)
        return None

    def _unavailable(self, text: str, ctx: ActionContext) -> Optional[DecisionResult]:
        unavailable = [m for m in ctx.menu_items if not m.available]
        hits = self._exact_hits(text, unavailable)
        if not hits:
            return None
        name = hits[0].item.name
        return _result(
            None,
            KEYWORD_CONFIDENCE,
            f"{name} is on the menu but unavailable",
            intent="item_unavailable",
            entities={"item": name},
            reply=f"Sorry, {name} is currently unavailable. Can I suggest something else?",
        )


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _line(item: MenuItemContext, quantity: int) -> OrderLine:
    return OrderLine(
        menu_item_id=item.id,
        name=item.name,
        quantity=quantity,
        unit_price=item.price,
        line_total=round(item.price * quantity, 2),
    )


def _result(
    action: Optional[BaseAction],
    confidence: float,
    reasoning: str,
    *,
    intent: Optional[str] = None,
    entities: Optional[dict] = None,
    reply: Optional[str] = None,
) -> DecisionResult:
    return DecisionResult(
        action=action,
        confidence=confidence,
        reasoning=reasoning,
        used_fallback=True,
        reply=reply if reply is not None else (action.confirmation_message() if action else None),
        intent=intent,
        entities=entities or {},
        metadata=DecisionMetadata(path="fallback"),
    )
