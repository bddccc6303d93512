import argparse

import pytest

from main import PrintSink, parse_item
from opera.models.project import ItemType
from opera.models.research import ResearchCycle
from opera.services import streaming


def test_parse_item():
    item = parse_item("organization:Acme Corp")
    assert item.type == ItemType.ORGANIZATION
    assert item.name == "acme corp"

    assert parse_item("springfield").type == ItemType.KEYWORD

    with pytest.raises(argparse.ArgumentTypeError):
        parse_item("planet:mars")
    with pytest.raises(argparse.ArgumentTypeError):
        parse_item("entity:   ")


def test_print_sink(capsys):
    cycle = ResearchCycle(project_id="p1", cycle_number=3, sources_found=2, findings_queued=1)
    sink = PrintSink()
    sink.emit(streaming.cycle_started(cycle))
    sink.emit(streaming.cycle_complete(cycle, message="No sources found"))

    out = capsys.readouterr().out
    assert "Research cycle #3 started" in out
    assert "Queued for review: 1" in out
    assert "No sources found" in out
