from datetime import date, datetime

from arena_logs.events import EventType, ParserState
from arena_logs.parser_simplified import SimplifiedLogParser

REFERENCE = date(2025, 1, 2)


def test_heal():
    event = SimplifiedLogParser(REFERENCE).parse_line(
        "12:34:56 - HEAL: Alice healed with Flash Heal for 1500"
    )
    assert event.event_type is EventType.SPELL_HEAL
    assert event.timestamp == datetime(2025, 1, 2, 12, 34, 56)
    assert event.source_name == "Alice"
    assert event.target_name is None
    assert event.spell_name == "Flash Heal"
    assert event.healing == 1500
    assert event.damage is None


def test_damage_com_alvo():
    event = SimplifiedLogParser(REFERENCE).parse_line(
        "12:35:01 - DAMAGE: Bob used Mortal Strike for 2500 on Alice"
    )
    assert event.event_type is EventType.SPELL_DAMAGE
    assert event.source_name == "Bob"
    assert event.target_name == "Alice"
    assert event.spell_name == "Mortal Strike"
    assert event.damage == 2500


def test_damage_sem_valor():
    event = SimplifiedLogParser(REFERENCE).parse_line("12:35:01 - DAMAGE: Bob used Charge on Alice")
    assert event.spell_name == "Charge"
    assert event.target_name == "Alice"
    assert event.damage is None


def test_interrupt_com_codigos_de_cor():
    """Códigos de cor do addon são removidos antes do reconhecimento."""
    event = SimplifiedLogParser(REFERENCE).parse_line(
        "12:36:10 - |cffff8800INTERRUPT:|r Bob interrupted Alice's Flash Heal"
    )
    assert event.event_type is EventType.OTHER
    assert event.raw_event == "SPELL_CAST_SUCCESS"
    assert event.source_name == "Bob"
    assert event.target_name == "Alice"
    assert event.spell_name == "Flash Heal"


def test_datetime_como_referencia_usa_so_a_data():
    event = SimplifiedLogParser(datetime(2025, 1, 2, 23, 0)).parse_line(
        "00:00:05 - HEAL: Alice healed with Renew for 10"
    )
    assert event.timestamp == datetime(2025, 1, 2, 0, 0, 5)


def test_decode_descarta_linhas_desconhecidas():
    """Linha sem HEAL:/DAMAGE: é descartada sem contar como malformada;
    horário impossível conta."""
    lines = [
        "12:00:00 - Arena started\n",
        "25:61:00 - HEAL: Alice healed with Renew for 10\n",
        "12:00:01 - HEAL: Alice healed with Renew for 10\n",
        "texto qualquer\n",
    ]
    state = ParserState(source="simples.txt")
    events = list(SimplifiedLogParser(REFERENCE).decode(lines, state))
    assert len(events) == 1
    assert events[0].spell_name == "Renew"
    assert state.malformed_lines == 1
