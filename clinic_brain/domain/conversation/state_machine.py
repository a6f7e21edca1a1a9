"""
Conversation state machine for the WhatsApp assistant.

``transition`` is a pure function: given the stored session state and the
patient's raw message it returns the next state, the reply text and whether
the conversation ended. Persistence and delivery live in the webhook service.
"""

import re
import unicodedata
from typing import NamedTuple

from ...config import BOOKING_SITE_URL, DEFAULT_DOCTOR_NAME

INITIAL = "INITIAL"
MAIN_MENU = "MAIN_MENU"
SERVICES_MENU = "SERVICES_MENU"
ATTENDANT = "ATTENDANT"
CLOSED = "CLOSED"

STATES = (INITIAL, MAIN_MENU, SERVICES_MENU, ATTENDANT, CLOSED)

RESTART_WORDS = ("menu", "iniciar", "oi")
CLOSE_WORDS = ("encerrar", "sair")

_INTENT_KEYWORDS = (
    ("2", ("remarcar",)),
    ("1", ("marcar", "agendar")),
    ("3", ("cancelar",)),
    ("4", ("doutora", "atendente", "humano", "pessoa")),
)

_BOOKING_ACTIONS = {"1": "marcar", "2": "remarcar", "3": "cancelar"}


class TransitionResult(NamedTuple):
    next_state: str
    response_message: str
    should_end: bool


def normalize_input(raw_input: str) -> str:
    """Lowercase, strip accents and punctuation"""
    text = (raw_input or "").strip().lower()
    text = unicodedata.normalize("NFD", text)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return re.sub(r"[^\w\s]", "", text).strip()


def detect_intent(raw_input: str) -> str:
    """
    Map free text to a menu option.

    A bare digit 0-4 wins. Otherwise keywords are checked with ``remarcar``
    before ``marcar`` so a reschedule request is not read as a booking.
    Anything else is returned normalized for word matching.
    """
    text = normalize_input(raw_input)

    if re.fullmatch(r"[0-4]", text):
        return text

    for option, keywords in _INTENT_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return option

    return text


def main_menu_message(doctor_name: str) -> str:
    return (
        f"Olá! 👋 Você está falando com a assistente da {doctor_name}.\n"
        "Escolha uma opção:\n"
        "1 - Marcar consulta\n"
        "2 - Remarcar consulta\n"
        "3 - Cancelar consulta\n"
        "4 - Conversar com a doutora\n"
        "0 - Encerrar conversa"
    )


def services_menu_message(booking_url: str) -> str:
    return (
        "Fluxo de agendamento:\n"
        f"1 - Marcar consulta ({booking_url})\n"
        f"2 - Remarcar consulta ({booking_url})\n"
        f"3 - Cancelar consulta ({booking_url})\n"
        "4 - Conversar com a doutora\n"
        "0 - Voltar ao menu principal"
    )


def booking_action_message(action: str, booking_url: str) -> str:
    return (
        f"Perfeito. Para {action} consulta, use este link: {booking_url}\n"
        "Se quiser conversar direto com a doutora, envie 4.\n"
        'Para voltar ao menu principal, envie "menu".'
    )


def _invalid(state: str, menu: str) -> TransitionResult:
    return TransitionResult(state, f"Não entendi sua opção.\n{menu}", False)


def transition(
    current_state: str,
    raw_input: str,
    booking_url: str = BOOKING_SITE_URL,
    doctor_name: str = DEFAULT_DOCTOR_NAME,
) -> TransitionResult:
    """Compute the next conversation step. Unknown states restart the dialogue."""
    intent = detect_intent(raw_input)
    main_menu = main_menu_message(doctor_name)

    if current_state == MAIN_MENU:
        if intent in ("0",) + CLOSE_WORDS:
            return TransitionResult(
                CLOSED, 'Conversa encerrada. Quando quiser voltar, envie "menu".', True
            )
        if intent in _BOOKING_ACTIONS:
            return TransitionResult(
                SERVICES_MENU, booking_action_message(_BOOKING_ACTIONS[intent], booking_url), False
            )
        if intent == "4":
            return TransitionResult(
                ATTENDANT,
                f"Perfeito. Vou te encaminhar para {doctor_name}. "
                'Enquanto isso, envie "menu" para voltar ao menu principal.',
                False,
            )
        return _invalid(MAIN_MENU, main_menu)

    if current_state == SERVICES_MENU:
        if intent in ("0", "menu"):
            return TransitionResult(MAIN_MENU, main_menu, False)
        if intent in _BOOKING_ACTIONS:
            return TransitionResult(
                SERVICES_MENU, booking_action_message(_BOOKING_ACTIONS[intent], booking_url), False
            )
        if intent == "4":
            return TransitionResult(ATTENDANT, f"Perfeito. Vou te encaminhar para {doctor_name}.", False)
        if intent in CLOSE_WORDS:
            return TransitionResult(
                CLOSED, 'Conversa encerrada. Quando quiser voltar, envie "menu".', True
            )
        return _invalid(SERVICES_MENU, services_menu_message(booking_url))

    if current_state == ATTENDANT:
        if intent in ("0", "menu"):
            return TransitionResult(MAIN_MENU, main_menu, False)
        if intent in CLOSE_WORDS:
            return TransitionResult(
                CLOSED, 'Conversa encerrada. Envie "menu" quando quiser retomar.', True
            )
        return TransitionResult(
            ATTENDANT,
            f"Recebi sua mensagem e encaminhei para {doctor_name}. "
            'Envie "menu" para voltar ao menu principal.',
            False,
        )

    if current_state == CLOSED:
        if intent in RESTART_WORDS:
            return TransitionResult(MAIN_MENU, main_menu, False)
        return TransitionResult(
            CLOSED, 'Conversa finalizada. Envie "menu" para iniciar novamente.', True
        )

    # INITIAL (or anything unrecognized): greet with the main menu
    return TransitionResult(MAIN_MENU, main_menu, False)
