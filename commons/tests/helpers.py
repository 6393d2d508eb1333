# commons/tests/helpers.py
"""
Doubles de transporte KRA e respostas prontas usados pelos testes.
"""

from fiscal.kra_codec import KraReply, build_command, parse_reply, serialize_command

TAXPAYER_PIN = "P051234567X"
OTHER_TAXPAYER_PIN = "P059999999Z"
DEVICE_SERIAL = "KRACU0100000001"


def reply_xml(status: str = "P", data: dict | None = None) -> str:
    """
    Monta um corpo de resposta no formato do dispositivo (<KRA><STATUS/><DATA/>).
    """
    command = build_command("RESP", "RESP", data or {})
    body = serialize_command(command)
    return body.replace("<PIN>RESP</PIN><CMD>RESP</CMD>", f"<STATUS>{status}</STATUS>")


def ok_reply(data: dict | None = None) -> KraReply:
    return parse_reply(reply_xml("P", data))


def signed_receipt_data(**overrides) -> dict:
    data = {
        "Snumber": DEVICE_SERIAL,
        "Date": "19/10/2026",
        "Time": "14:05:09",
        "RLabel": "NS",
        "TNumber": "152",
        "GNumber": "389",
        "Signature": "V249-J39C-FJ48-HE2W",
        "InternalData": "ABCD1234EFGH",
    }
    data.update(overrides)
    return data


class FakeTransport:
    """
    Transporte em memória.

    - outcomes: fila de respostas (KraReply) ou exceções, consumida em ordem.
    - default: usado quando a fila acaba.
    Registra todas as chamadas em self.calls como (command, target).
    """

    def __init__(self, outcomes=None, default=None):
        self.outcomes = list(outcomes or [])
        self.default = default if default is not None else ok_reply()
        self.calls = []

    def send(self, command, *, target, context=None):
        self.calls.append((command, target))
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    @property
    def commands(self):
        return [command.cmd for command, _ in self.calls]
