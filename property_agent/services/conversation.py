"""Per-turn orchestration for chat, feedback, sales calls and call webhooks.

Each turn reads a snapshot of the session, derives a new record through the
pure extraction and gating stages, and persists it with a single write.
Collaborator failures degrade to local fallbacks and never reach callers.
"""

from __future__ import annotations

import logging
from contextlib import nullcontext
from typing import Any, Dict, List, Optional

from property_agent.logging.flight_recorder import FlightRecorder
from property_agent.models.api import (
    CallOutcome,
    CallResult,
    ChatResponse,
    FeedbackRequest,
    FeedbackResponse,
    InitiateCallRequest,
    SalesChatRequest,
    SalesChatResponse,
)
from property_agent.models.session import (
    NEGATIVE_SENTIMENTS,
    CallInfo,
    CustomerInfo,
    FeedbackRecord,
    PropertyInfo,
    SearchRecord,
    SearchResult,
    Session,
    utcnow,
)
from property_agent.services import call_outcome
from property_agent.services.confirmation_gate import apply_turn, has_affirmative_cue, should_search_properties
from property_agent.services.property_parser import PropertyParser
from property_agent.services.property_search import PropertySearchClient
from property_agent.services.responder import ReplyStrategy, build_reply_strategy, is_first_turn
from property_agent.services.sales_agent import SalesStrategy, build_sales_strategy, introduction
from property_agent.services.search_trigger import (
    build_search_query,
    refine_query_from_feedback,
    should_trigger_search,
)
from property_agent.services.session_store import SessionStore, append_turn, build_session_store
from property_agent.services.slot_extractor import extract
from property_agent.services.telephony import TelephonyError, TwilioClient
from property_agent.services.tts import SpeechSynthesizer

logger = logging.getLogger(__name__)

MAX_LINKS = 5
REPEAT_PROMPT = "I didn't catch that. Could you please repeat what you said?"


class InvalidTurnError(ValueError):
    """Raised before any session state is touched when a request is malformed."""


def _stage(recorder: Optional[FlightRecorder], stage: str, **metadata: Any):
    return recorder.stage(stage, **metadata) if recorder else nullcontext()


def _bind(recorder: Optional[FlightRecorder], session_id: Optional[str]) -> None:
    if recorder:
        recorder.bind(session_id)


class ConversationService:
    def __init__(
        self,
        store: SessionStore,
        responder: ReplyStrategy,
        sales_agent: SalesStrategy,
        search: PropertySearchClient,
        tts: SpeechSynthesizer,
        telephony: TwilioClient,
        parser: PropertyParser,
    ) -> None:
        self.store = store
        self.responder = responder
        self.sales_agent = sales_agent
        self.search = search
        self.tts = tts
        self.telephony = telephony
        self.parser = parser

    # Chat -----------------------------------------------------------------

    async def handle_chat_turn(
        self,
        session_id: Optional[str],
        text: Optional[str],
        recorder: Optional[FlightRecorder] = None,
    ) -> ChatResponse:
        if not session_id or not text or not text.strip():
            raise InvalidTurnError("sessionId and text are required")

        _bind(recorder, session_id)
        session = self.store.get(session_id)
        before = session.requirements
        session = append_turn(session, "user", text)

        # While a summary is awaiting confirmation, anything but acceptance may restate slots.
        overwrite = before.waiting_for_confirmation and not has_affirmative_cue(text)
        with _stage(recorder, "EXTRACT", overwrite=overwrite):
            extracted = extract(text, before, overwrite=overwrite)
        gate = apply_turn(before, extracted, text)
        requirements = gate.requirements
        if recorder:
            recorder.log("GATE", gate.event.value, confirmed=requirements.confirmed)

        reply = await self.responder.respond(text, session.conversation_history, requirements, gate.event, recorder)
        session = append_turn(session, "assistant", reply)

        links: List[SearchResult] = []
        search_history = list(session.property_search_history)
        search_performed = False
        if should_trigger_search(requirements, reply):
            query = build_search_query(requirements)
            logger.info("search.paid session=%s query=%s", session_id, query)
            with _stage(recorder, "SEARCH", query=query):
                links = await self.search.search(query, recorder)
            search_history.append(SearchRecord(query=query, results=links))
            search_performed = True

        if search_performed:
            state = "presenting_results"
        elif is_first_turn(session.conversation_history[:-1]):
            state = "introduction"
        elif requirements.confirmed:
            state = session.current_state
        else:
            state = "gathering_requirements"

        call_ended = False
        summary = None
        if session.call_info and call_outcome.should_end_call(reply):
            with _stage(recorder, "CLASSIFY"):
                outcome = call_outcome.classify(session.conversation_history, session.property_info)
            call_ended, summary = True, outcome.summary
            state = "call_ended"

        audio = await self.tts.synthesize(reply, recorder)

        with _stage(recorder, "STORE"):
            self.store.set(
                session_id,
                session.model_copy(
                    update={
                        "requirements": requirements,
                        "current_state": state,
                        "property_search_history": search_history,
                    }
                ),
            )

        return ChatResponse(
            reply_text=reply,
            links=links[:MAX_LINKS],
            audio=audio,
            requirements=requirements,
            conversation_state=state,
            search_performed=search_performed,
            call_ended=call_ended,
            summary=summary,
        )

    async def handle_feedback(
        self,
        request: FeedbackRequest,
        recorder: Optional[FlightRecorder] = None,
    ) -> FeedbackResponse:
        if not request.session_id or not request.property_id or not request.feedback:
            raise InvalidTurnError("sessionId, propertyId, and feedback are required")

        _bind(recorder, request.session_id)
        session = self.store.get(request.session_id)
        record = FeedbackRecord(subject_id=request.property_id, sentiment=request.feedback, reason=request.reason)
        feedback = [*session.user_feedback, record]
        negative = request.feedback in NEGATIVE_SENTIMENTS

        if negative:
            noted = f"I noted your concern: {request.reason}. " if request.reason else ""
            reply = (
                f"I understand that property wasn't quite right. {noted}"
                "Let me search for better options that address your preferences."
            )
        else:
            noted = f"I noted that you liked it because: {request.reason}. " if request.reason else ""
            reply = f"I'm glad you liked that property! {noted}Would you like me to find more similar properties?"

        suffix = f" - {request.reason}" if request.reason else ""
        session = append_turn(session, "user", f"Feedback on property: {request.feedback}{suffix}")
        session = append_turn(session, "assistant", reply)

        links: List[SearchResult] = []
        search_history = list(session.property_search_history)
        state = "collecting_feedback"
        if negative and should_search_properties(session.requirements):
            query = refine_query_from_feedback(session.requirements, feedback)
            with _stage(recorder, "SEARCH", query=query, refined=True):
                links = await self.search.search(query, recorder)
            search_history.append(SearchRecord(query=query, results=links))
            state = "presenting_results"
        elif negative:
            logger.info("feedback.search_skipped session=%s reason=unconfirmed", request.session_id)

        audio = await self.tts.synthesize(reply, recorder)
        self.store.set(
            request.session_id,
            session.model_copy(
                update={"user_feedback": feedback, "property_search_history": search_history, "current_state": state}
            ),
        )
        return FeedbackResponse(reply_text=reply, links=links[:MAX_LINKS], audio=audio)

    # Sales calls ----------------------------------------------------------

    async def _sales_reply(
        self,
        session: Session,
        text: str,
        recorder: Optional[FlightRecorder],
    ) -> tuple[Session, str, bool, Optional[CallOutcome]]:
        property_info = session.property_info or PropertyInfo()
        customer = session.customer_info or CustomerInfo()
        session = append_turn(session, "user", text)
        reply = await self.sales_agent.respond(text, session.conversation_history, property_info, customer, recorder)
        session = append_turn(session, "assistant", reply)

        ended = call_outcome.should_end_call(reply)
        outcome = None
        if ended:
            with _stage(recorder, "CLASSIFY"):
                outcome = call_outcome.classify(session.conversation_history, property_info)
            logger.info("sales.call_ended outcome=%s", outcome.outcome)
        return session, reply, ended, outcome

    async def handle_sales_turn(
        self,
        request: SalesChatRequest,
        recorder: Optional[FlightRecorder] = None,
    ) -> SalesChatResponse:
        if not request.session_id or not request.text or not request.text.strip():
            raise InvalidTurnError("sessionId and text are required")

        _bind(recorder, request.session_id)
        session = self.store.get(request.session_id)
        updates: Dict[str, Any] = {}
        if request.property_info:
            updates["property_info"] = request.property_info
        if request.customer_name or request.customer_phone:
            updates["customer_info"] = CustomerInfo(name=request.customer_name, phone=request.customer_phone)
        session = session.model_copy(update=updates)

        session, reply, ended, outcome = await self._sales_reply(session, request.text, recorder)
        feedback = call_outcome.extract_customer_feedback(session.conversation_history) if ended else None
        state = "call_ended" if ended else "voice_call_active"

        audio = await self.tts.synthesize(reply, recorder)
        self.store.set(request.session_id, session.model_copy(update={"current_state": state}))

        return SalesChatResponse(
            reply_text=reply,
            audio=audio,
            call_ended=ended,
            summary=outcome.summary if outcome else None,
            outcome=outcome,
            customer_feedback=feedback,
        )

    async def initiate_call(
        self,
        request: InitiateCallRequest,
        recorder: Optional[FlightRecorder] = None,
    ) -> CallResult:
        if not request.session_id or not request.customer_phone:
            raise InvalidTurnError("sessionId and customerPhone are required")

        _bind(recorder, request.session_id)
        session = self.store.get(request.session_id).model_copy(
            update={
                "property_info": request.property_info,
                "customer_info": request.customer(),
                "current_state": "initiating_voice_call",
            }
        )
        try:
            with _stage(recorder, "CALL", customer_phone=request.customer_phone):
                result = await self.telephony.initiate_call(request.customer_phone, request.session_id)
        except TelephonyError as exc:
            logger.warning("call.initiate_failed session=%s err=%s", request.session_id, exc)
            self.store.set(request.session_id, session)
            return CallResult(success=False, error=str(exc))

        call_info = CallInfo(
            call_sid=result.call_sid or "",
            status=result.status or "queued",
            customer_phone=request.customer_phone,
        )
        self.store.set(request.session_id, session.model_copy(update={"call_info": call_info}))
        return result

    def voice_greeting(self, session_id: str) -> str:
        """Opening line for an answered call, recorded as the first assistant turn."""

        def _greet(session: Session) -> Session:
            text = introduction(session.property_info or PropertyInfo(), session.customer_info or CustomerInfo())
            return append_turn(session, "assistant", text).model_copy(update={"current_state": "voice_call_active"})

        session = self.store.update(session_id, _greet)
        return session.conversation_history[-1].content

    async def handle_call_speech(
        self,
        session_id: str,
        speech: str,
        recorder: Optional[FlightRecorder] = None,
    ) -> tuple[str, bool]:
        """Process one recognised caller utterance; returns the reply and whether to hang up."""
        if not speech or not speech.strip():
            return REPEAT_PROMPT, False

        _bind(recorder, session_id)
        session = self.store.get(session_id)
        if not session.call_info:
            session = session.model_copy(
                update={"call_info": CallInfo(call_sid=f"temp-{session_id}", status="in-progress")}
            )
        session, reply, ended, _ = await self._sales_reply(session, speech, recorder)
        state = "call_ended" if ended else "voice_call_active"
        self.store.set(session_id, session.model_copy(update={"current_state": state}))
        return reply, ended

    def record_call_status(
        self,
        session_id: str,
        status: Optional[str],
        call_sid: Optional[str] = None,
        duration: Optional[str] = None,
    ) -> Session:
        def _apply(session: Session) -> Session:
            updates: Dict[str, Any] = {}
            if session.call_info:
                call_updates: Dict[str, Any] = {"status": status or session.call_info.status, "last_update": utcnow()}
                if call_sid:
                    call_updates["call_sid"] = call_sid
                if duration:
                    call_updates["duration"] = duration
                updates["call_info"] = session.call_info.model_copy(update=call_updates)
            if status == "in-progress":
                updates["current_state"] = "voice_call_active"
            elif status in ("completed", "failed"):
                updates["current_state"] = "call_ended"
            return session.model_copy(update=updates)

        logger.info("call.status session=%s status=%s", session_id, status)
        return self.store.update(session_id, _apply)

    def record_recording(self, session_id: str, recording_url: Optional[str], recording_sid: Optional[str]) -> Session:
        def _apply(session: Session) -> Session:
            if not session.call_info:
                return session
            call_info = session.call_info.model_copy(
                update={"recording_url": recording_url, "recording_sid": recording_sid}
            )
            return session.model_copy(update={"call_info": call_info})

        return self.store.update(session_id, _apply)

    def call_status(self, session_id: str) -> Optional[Dict[str, Any]]:
        session = self.store.get(session_id)
        if not session.call_info:
            return None
        return {
            "success": True,
            "status": session.call_info.status,
            "callSid": session.call_info.call_sid,
            "transcript": [turn.model_dump(mode="json") for turn in session.conversation_history],
        }

    async def end_call(self, session_id: str, recorder: Optional[FlightRecorder] = None) -> Optional[CallInfo]:
        _bind(recorder, session_id)
        session = self.store.get(session_id)
        if not session.call_info:
            return None
        if self.telephony.is_configured() and not session.call_info.call_sid.startswith("temp-"):
            try:
                with _stage(recorder, "CALL", action="end"):
                    await self.telephony.end_call(session.call_info.call_sid)
            except TelephonyError as exc:
                logger.warning("call.end_failed session=%s err=%s", session_id, exc)

        def _close(current: Session) -> Session:
            call_info = (current.call_info or session.call_info).model_copy(
                update={"status": "completed", "last_update": utcnow()}
            )
            return current.model_copy(update={"call_info": call_info, "current_state": "call_ended"})

        return self.store.update(session_id, _close).call_info

    # Sessions and listings ------------------------------------------------

    async def parse_property(self, url: Optional[str], recorder: Optional[FlightRecorder] = None) -> PropertyInfo:
        if not url:
            raise InvalidTurnError("Property URL is required")
        with _stage(recorder, "PARSE"):
            return await self.parser.parse_or_sample(url, recorder)

    def get_session(self, session_id: str) -> Dict[str, Any]:
        session = self.store.get(session_id)
        return {
            "requirements": session.requirements.model_dump(by_alias=True),
            "conversationState": session.current_state,
            "conversationHistory": [turn.model_dump(mode="json") for turn in session.conversation_history],
            "propertySearchHistory": [record.model_dump(mode="json") for record in session.property_search_history],
            "userFeedback": [record.model_dump(mode="json", by_alias=True) for record in session.user_feedback],
        }

    def clear_session(self, session_id: str) -> None:
        self.store.delete(session_id)
        logger.info("session.cleared session=%s", session_id)


def build_conversation_service(store: Optional[SessionStore] = None) -> ConversationService:
    return ConversationService(
        store=store or build_session_store(),
        responder=build_reply_strategy(),
        sales_agent=build_sales_strategy(),
        search=PropertySearchClient(),
        tts=SpeechSynthesizer(),
        telephony=TwilioClient(),
        parser=PropertyParser(),
    )
