"""Triage script: per-step transition table for a sender's conversation.

`advance` is pure: the outcome depends only on the session's step and fields,
the inbound text and, for the two data-collection steps, the local hour.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional

from lexintake.schemas.session import PracticeArea, PrisonStatus, Session, TriageStep
from lexintake.services.intent_service import ReplyToken, has_token, parse_area

ESCALATION_DELAY_SECONDS = 30.0
BUSINESS_HOURS = (8, 19)

MSG_GREETING = (
    "Olá! Você está falando com o atendimento do escritório. "
    "Vamos fazer algumas perguntas rápidas para direcionar o seu caso."
)
MSG_AREA_MENU = (
    "Qual é a área do seu caso? Responda com o número:\n"
    "1 - Criminal\n"
    "2 - Família\n"
    "3 - Cível\n"
    "4 - Trabalhista\n"
    "5 - Outros"
)
MSG_PRISON_STATUS = "A prisão aconteceu hoje ou a pessoa já está presa há mais tempo?"
MSG_CUSTODY = "A audiência de custódia já aconteceu?"
MSG_CALL_PERMISSION = "Trata-se de um caso urgente. Podemos ligar para você agora? (Sim/Não)"
MSG_HAS_LAWYER = "Você já tem advogado constituído neste caso? (Sim/Não)"
MSG_LAWYER_SWITCH = "Você procura trocar de advogado ou apenas uma orientação pontual?"
MSG_LEAD_DATA = "Por favor, envie em uma única mensagem: seu nome completo, cidade/estado e um breve resumo do caso."
MSG_PROCESS_DATA = (
    "Por favor, envie em uma única mensagem: seu nome completo, cidade/estado, um breve resumo do caso "
    "e o número do processo ou o CPF do cliente para consultarmos."
)
MSG_CONFLICT_DECLINE = (
    "Por questões éticas, não podemos orientar quem já possui advogado constituído no mesmo caso. "
    "Recomendamos conversar com o seu advogado atual. Se decidir trocar de advogado, é só nos chamar."
)
MSG_BUSINESS_HOURS = (
    "Obrigado! Recebemos suas informações. Um de nossos advogados está finalizando um atendimento "
    "e falará com você em instantes."
)
MSG_AFTER_HOURS = (
    "Obrigado! Recebemos suas informações. Estamos fora do horário de expediente, "
    "mas o advogado de plantão foi avisado e retornará assim que possível."
)
MSG_CALL_NOT_CONNECTED = (
    "Tentamos ligar para você, mas a chamada não completou. Por favor, ligue para nós neste mesmo número."
)


@dataclass(frozen=True)
class FollowUp:
    delay_seconds: float
    text: str


@dataclass
class TriageOutcome:
    session: Optional[Session]
    replies: list[str] = field(default_factory=list)
    follow_up: Optional[FollowUp] = None

    @property
    def terminal(self) -> bool:
        return self.session is None


# None marks the terminal exit (session deleted).
VALID_TRANSITIONS: dict[TriageStep, frozenset[Optional[TriageStep]]] = {
    TriageStep.OPENING: frozenset({TriageStep.AREA}),
    TriageStep.AREA: frozenset({TriageStep.PRISON_STATUS, TriageStep.HAS_LAWYER}),
    TriageStep.PRISON_STATUS: frozenset({TriageStep.CUSTODY, TriageStep.HAS_LAWYER}),
    TriageStep.CUSTODY: frozenset({TriageStep.CALL_PERMISSION, TriageStep.HAS_LAWYER}),
    TriageStep.CALL_PERMISSION: frozenset({None}),
    TriageStep.HAS_LAWYER: frozenset({TriageStep.LEAD_DATA, TriageStep.LAWYER_SWITCH}),
    TriageStep.LAWYER_SWITCH: frozenset({TriageStep.PROCESS_DATA, None}),
    TriageStep.LEAD_DATA: frozenset({None}),
    TriageStep.PROCESS_DATA: frozenset({None}),
}


class InvalidTransitionError(Exception):
    def __init__(self, from_step: TriageStep, to_step: Optional[TriageStep]):
        self.from_step = from_step
        self.to_step = to_step
        target = to_step.value if to_step else "end"
        super().__init__(f"Invalid transition: {from_step.value} -> {target}")


def can_transition(from_step: TriageStep, to_step: Optional[TriageStep]) -> bool:
    """Check if transition is valid. to_step=None means the conversation ends."""
    return to_step in VALID_TRANSITIONS.get(from_step, frozenset())


def check_invariants(session: Session) -> list[str]:
    """Return the list of invariant violations for a session (empty when consistent)."""
    violations = []

    if session.prison_status is not None and session.area != PracticeArea.CRIMINAL:
        violations.append("prison_status_without_criminal_area")

    criminal_steps = {TriageStep.PRISON_STATUS, TriageStep.CUSTODY, TriageStep.CALL_PERMISSION}
    if session.step in criminal_steps and session.area != PracticeArea.CRIMINAL:
        violations.append("criminal_step_without_criminal_area")

    if session.step not in {TriageStep.OPENING, TriageStep.AREA} and session.area is None:
        violations.append("missing_area")

    return violations


def is_business_hour(hour: int, business_hours: tuple[int, int] = BUSINESS_HOURS) -> bool:
    start, end = business_hours
    return start <= hour <= end


@dataclass(frozen=True)
class _StepInput:
    text: str
    hour: int
    business_hours: tuple[int, int]
    escalation_delay_seconds: float


def _move(session: Session, step: TriageStep, *replies: str, **updates) -> TriageOutcome:
    return TriageOutcome(session=session.model_copy(update={"step": step, **updates}), replies=list(replies))


def _finish(*replies: str, follow_up: Optional[FollowUp] = None) -> TriageOutcome:
    return TriageOutcome(session=None, replies=list(replies), follow_up=follow_up)


def _on_opening(session: Session, data: _StepInput) -> TriageOutcome:
    return _move(session, TriageStep.AREA, MSG_GREETING, MSG_AREA_MENU)


def _on_area(session: Session, data: _StepInput) -> TriageOutcome:
    area = parse_area(data.text)
    if area == PracticeArea.CRIMINAL:
        return _move(session, TriageStep.PRISON_STATUS, MSG_PRISON_STATUS, area=area)
    return _move(session, TriageStep.HAS_LAWYER, MSG_HAS_LAWYER, area=area)


def _on_prison_status(session: Session, data: _StepInput) -> TriageOutcome:
    if has_token(data.text, ReplyToken.TODAY):
        return _move(session, TriageStep.CUSTODY, MSG_CUSTODY, prison_status=PrisonStatus.ARRESTED_TODAY)
    return _move(session, TriageStep.HAS_LAWYER, MSG_HAS_LAWYER, prison_status=PrisonStatus.ALREADY_IN_CUSTODY)


def _on_custody(session: Session, data: _StepInput) -> TriageOutcome:
    if has_token(data.text, ReplyToken.NEGATIVE):
        return _move(session, TriageStep.CALL_PERMISSION, MSG_CALL_PERMISSION)
    return _move(session, TriageStep.HAS_LAWYER, MSG_HAS_LAWYER)


def _on_call_permission(session: Session, data: _StepInput) -> TriageOutcome:
    if has_token(data.text, ReplyToken.AFFIRMATIVE):
        return _finish(follow_up=FollowUp(delay_seconds=data.escalation_delay_seconds, text=MSG_CALL_NOT_CONNECTED))
    return _finish()


def _on_has_lawyer(session: Session, data: _StepInput) -> TriageOutcome:
    if has_token(data.text, ReplyToken.NEGATIVE):
        return _move(session, TriageStep.LEAD_DATA, MSG_LEAD_DATA)
    return _move(session, TriageStep.LAWYER_SWITCH, MSG_LAWYER_SWITCH)


def _on_lawyer_switch(session: Session, data: _StepInput) -> TriageOutcome:
    if has_token(data.text, ReplyToken.SWITCH):
        return _move(session, TriageStep.PROCESS_DATA, MSG_PROCESS_DATA)
    return _finish(MSG_CONFLICT_DECLINE)


def _on_case_data(session: Session, data: _StepInput) -> TriageOutcome:
    if is_business_hour(data.hour, data.business_hours):
        return _finish(MSG_BUSINESS_HOURS)
    return _finish(MSG_AFTER_HOURS)


STEP_HANDLERS: dict[TriageStep, Callable[[Session, _StepInput], TriageOutcome]] = {
    TriageStep.OPENING: _on_opening,
    TriageStep.AREA: _on_area,
    TriageStep.PRISON_STATUS: _on_prison_status,
    TriageStep.CUSTODY: _on_custody,
    TriageStep.CALL_PERMISSION: _on_call_permission,
    TriageStep.HAS_LAWYER: _on_has_lawyer,
    TriageStep.LAWYER_SWITCH: _on_lawyer_switch,
    TriageStep.LEAD_DATA: _on_case_data,
    TriageStep.PROCESS_DATA: _on_case_data,
}


def advance(
    session: Session,
    text: str,
    *,
    hour: int,
    business_hours: tuple[int, int] = BUSINESS_HOURS,
    escalation_delay_seconds: float = ESCALATION_DELAY_SECONDS,
) -> TriageOutcome:
    """Apply one inbound message to the session. Never fails on user input.

    Returns the next session (None when the conversation is over), the replies
    to send in order, and an optional delayed follow-up.
    """
    handler = STEP_HANDLERS[session.step]
    outcome = handler(
        session,
        _StepInput(
            text=text or "",
            hour=hour,
            business_hours=business_hours,
            escalation_delay_seconds=escalation_delay_seconds,
        ),
    )

    next_step = outcome.session.step if outcome.session is not None else None
    if not can_transition(session.step, next_step):
        raise InvalidTransitionError(session.step, next_step)
    return outcome
