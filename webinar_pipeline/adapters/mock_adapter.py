from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .llm_base import CallOptions, LLMAdapter, LLMResponse

MARKER_PATTERNS = (
    re.compile(r"DELIVERABLE:\s*(PREFLIGHT|WR\d)\b"),
    re.compile(r"CONSTRAINT SUMMARY FOR (PREFLIGHT|WR\d)\b"),
)

PHASES = ("beginning", "middle", "end")


def detect_deliverable(*texts: Optional[str]) -> Optional[str]:
    for text in texts:
        if not text:
            continue
        for pattern in MARKER_PATTERNS:
            match = pattern.search(text)
            if match:
                return match.group(1)
    return None


def _input_payload(prompt: str) -> Dict[str, Any]:
    _, sep, tail = prompt.partition("INPUT:\n")
    if not sep:
        return {}
    try:
        payload = json.loads(tail)
    except json.JSONDecodeError:
        return {}
    return payload if isinstance(payload, dict) else {}


def block_timeboxes(length: int) -> List[int]:
    base, extra = divmod(length, 21)
    return [max(1, base + (1 if index < extra else 0)) for index in range(21)]


def _qa() -> Dict[str, List[str]]:
    return {"assumptions": ["Audience already knows the speaker's brand."], "placeholders": [], "claims_requiring_proof": []}


@dataclass
class MockAdapter(LLMAdapter):
    scenario: str = "default"
    prompts: List[str] = field(default_factory=list)

    def complete(
        self, prompt: str, system: Optional[str] = None, options: Optional[CallOptions] = None
    ) -> LLMResponse:
        self.prompts.append(prompt)
        payload = self._build_payload(prompt, system)
        return LLMResponse(raw_text=json.dumps(payload))

    def generate(self, prompt: str, system: Optional[str] = None, options: Optional[CallOptions] = None) -> str:
        return self.complete(prompt, system=system, options=options).raw_text

    def _build_payload(self, prompt: str, system: Optional[str]) -> Dict:
        deliverable = detect_deliverable(prompt, system)
        if deliverable is None:
            raise ValueError("Mock adapter could not find a deliverable marker in the prompt.")
        return self.payload_for(deliverable, _input_payload(prompt).get("settings"))

    def payload_for(self, deliverable: str, settings: Optional[Dict[str, Any]] = None) -> Dict:
        settings = settings or {}
        length = int(settings.get("webinar_length_minutes") or 60)
        client = settings.get("client_name") or "Northwind Coaching"
        speaker = settings.get("speaker_name") or "Jordan Lee"
        builders: Dict[str, Callable[[], Dict]] = {
            "PREFLIGHT": self._preflight,
            "WR1": lambda: self._dossier(client, speaker),
            "WR2": lambda: self._framework(length),
            "WR3": lambda: self._landing_page(speaker),
            "WR4": lambda: self._emails(speaker),
            "WR5": self._social,
            "WR6": lambda: self._run_of_show(length),
            "WR7": self._checklist,
            "WR8": self._deck_prompt,
        }
        return builders[deliverable]()

    def _preflight(self) -> Dict:
        if self.scenario == "blocked":
            return {
                "status": "blocked",
                "readiness": {"score": 25, "rationale": "The transcript never states the offer or who it is for."},
                "missing_context": [
                    {
                        "field": "offer",
                        "why_it_matters": "Every CTA depends on the offer.",
                        "example_answer": "12-week group coaching programme at $2,000.",
                    },
                    {
                        "field": "target_audience",
                        "why_it_matters": "Messaging cannot be targeted without an audience.",
                        "example_answer": "Independent consultants billing under $150k a year.",
                    },
                ],
                "assumptions": [],
                "recommended_questions": ["What exactly are you selling?", "Who is the ideal attendee?"],
            }
        return {
            "status": "can_proceed",
            "readiness": {"score": 88, "rationale": "Offer, audience and call to action are all stated."},
            "missing_context": [],
            "assumptions": ["Registration runs for two weeks before the live date."],
            "recommended_questions": ["Is there a replay window after the live session?"],
        }

    def _dossier(self, client: str, speaker: str) -> Dict:
        return {
            "parsed_intake": {
                "client_name": client,
                "company": client,
                "webinar_title": "Fill Your Calendar Without Cold Outreach",
                "offer": "Done-with-you client acquisition programme",
                "target_audience": "Independent consultants",
                "tone": "Warm and direct",
                "primary_cta_type": "book_call",
                "speaker_name": speaker,
                "speaker_title": "Founder",
            },
            "executive_summary": {
                "overview": "A teaching webinar that converts attendees into strategy calls.",
                "key_points": ["Referral engine", "Signature talk", "Follow-up cadence"],
            },
            "cleaned_transcript": "The speaker explains how consultants can book calls from one talk.",
            "structured_notes": ["Problem: feast or famine pipeline", "Mechanism: signature talk"],
            "main_themes": ["Consistency beats volume", "Teach before you sell"],
            "speaker_insights": ["Built a six-figure practice from one talk"],
            "proof_points": [
                {"type": "metric", "content": "42 booked calls from one session", "source": "Client CRM export"}
            ],
            "qa": _qa(),
        }

    def _framework(self, length: int) -> Dict:
        blocks = []
        for index, minutes in enumerate(block_timeboxes(length), start=1):
            blocks.append(
                {
                    "block_id": f"B{index:02d}",
                    "phase": PHASES[(index - 1) // 7],
                    "title": f"Block {index}",
                    "purpose": f"Move the audience through step {index}.",
                    "talk_track_md": f"Talk through step {index} with one concrete example.",
                    "speaker_notes_md": "Keep energy high and ask for chat replies.",
                    "transition_in": "Building on what we just covered...",
                    "transition_out": "Which brings us to the next piece.",
                    "timebox_minutes": minutes,
                    "proof_insertion_points": [],
                    "objections_handled": [],
                }
            )
        return {"blocks": blocks, "qa": _qa()}

    def _landing_page(self, speaker: str) -> Dict:
        return {
            "hero_headline": "Book Calls From One Talk",
            "subheadline": "A live training for consultants tired of cold outreach.",
            "bullets": ["The referral engine", "The signature talk", "The follow-up cadence"],
            "agenda_preview": [
                {"segment": "Why outreach stalls", "timebox_minutes": 10, "promise": "Diagnose the leak."},
                {"segment": "The signature talk", "timebox_minutes": 30, "promise": "Build your talk."},
                {"segment": "Next steps", "timebox_minutes": 20, "promise": "Leave with a plan."},
            ],
            "proof_blocks": [
                {"type": "metric", "content": "42 booked calls from one session", "needs_source": False}
            ],
            "speaker_bio": {
                "one_liner": f"{speaker} helps consultants fill their calendars.",
                "credibility_bullets": ["Ten years in consulting", "Hundreds of clients coached"],
            },
            "cta_block": {
                "headline": "Save your seat",
                "body": "Spots are limited for the live Q&A.",
                "button_label": "Register now",
                "link_placeholder": "https://example.com/book",
            },
            "faq": [{"question": "Is there a replay?", "answer": "Yes, for 48 hours."}],
            "who_its_for": ["Independent consultants"],
            "who_its_not_for": ["Agencies with a sales team"],
            "legal_disclaimer_md": "Results vary by business.",
            "qa": _qa(),
        }

    def _emails(self, speaker: str) -> Dict:
        emails = []
        for index in range(1, 9):
            emails.append(
                {
                    "email_id": f"E{index:02d}",
                    "timing": f"Day {index - 8} relative to the live session",
                    "subject": f"Part {index}: the calendar you want",
                    "preview_text": "One idea you can use today.",
                    "body_markdown": f"Hi there,\n\nHere is idea number {index}.\n\n{speaker}",
                    "primary_cta_label": "Save my seat",
                    "primary_cta_link_placeholder": "https://example.com/register",
                }
            )
        return {
            "send_rules": {
                "from_name_placeholder": speaker,
                "from_email_placeholder": "hello@example.com",
                "reply_to_placeholder": "support@example.com",
            },
            "emails": emails,
            "qa": _qa(),
        }

    def _social(self) -> Dict:
        return {
            "linkedin_posts": [
                {"social_id": f"S{index:02d}", "hook": f"Hook {index}", "body": "Short story with a lesson.", "cta_line": "Register below."}
                for index in range(1, 4)
            ],
            "x_posts": [{"social_id": f"S{index:02d}", "body": f"Thread starter {index}"} for index in range(4, 6)],
            "last_chance_blurbs": [{"social_id": "S06", "body": "Doors close tonight."}],
            "qa": _qa(),
        }

    def _run_of_show(self, length: int) -> Dict:
        timeline = []
        start = 0
        for index, minutes in enumerate(block_timeboxes(length), start=1):
            end = start + minutes
            timeline.append(
                {
                    "start_minute": start,
                    "end_minute": end,
                    "segment_title": f"Block {index}",
                    "block_id": f"B{index:02d}",
                    "description": f"Deliver block {index}.",
                    "coach_cue": "Smile and slow down.",
                    "fallback_if_cold": "Ask a yes/no question in chat.",
                    "time_check": f"Wrap by minute {end}.",
                }
            )
            start = end
        return {"total_duration_minutes": start, "timeline": timeline, "qa": _qa()}

    def _checklist(self) -> Dict:
        def items(category: str, tasks: List[str]) -> List[Dict]:
            return [
                {"checklist_id": f"CL_{category}_{index:03d}", "task": task, "timing": "As scheduled", "notes": ""}
                for index, task in enumerate(tasks, start=1)
            ]

        return {
            "pre_webinar": items("pre", ["Test audio", "Load slides", "Send reminder"]),
            "live_webinar": items("live", ["Welcome attendees", "Run the offer segment"]),
            "post_webinar": items("post", ["Send replay", "Follow up with bookers"]),
            "qa": _qa(),
        }

    def _deck_prompt(self) -> Dict:
        return {
            "gamma_prompt": (
                "Create a 14-slide teaching webinar deck for independent consultants. Use a clean, "
                "high-contrast style with one idea per slide, large headlines, and a closing slide "
                "that invites viewers to book a strategy call."
            ),
            "slide_count_recommendation": 14,
            "visual_direction": "Navy and warm white, generous whitespace, candid photography.",
            "key_slides": [
                {"slide_number": 1, "title": "Book Calls From One Talk", "purpose": "Hook", "content_points": ["Promise", "Speaker"]},
                {"slide_number": 7, "title": "The Signature Talk", "purpose": "Teach", "content_points": ["Structure", "Example"]},
                {"slide_number": 14, "title": "Your Next Step", "purpose": "Offer", "content_points": ["Book a call"]},
            ],
            "qa": _qa(),
        }
