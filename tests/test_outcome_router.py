"""
Tests para el enrutamiento éxito / error
"""
import json
import os
from pathlib import Path

import pytest

from ftcc.batch.errors import ErrorKind, ErrorList
from ftcc.batch.outcome_router import DocumentOutcome, OutcomeRouter, Route, RoutingError


@pytest.fixture
def router(batch_dirs, sink):
    return OutcomeRouter(batch_dirs["success"], batch_dirs["error"], sink)


@pytest.fixture
def source(batch_dirs):
    path = batch_dirs["outgoing"] / "factura.xml"
    path.write_text("<Factura/>", encoding="utf-8")
    return path


def _success(path):
    return DocumentOutcome(
        path=path,
        errors=ErrorList(),
        signed_xml=b"<Factura><ds:Signature/></Factura>",
        verify_request_xml=b"<dss:VerifyRequest/>",
    )


def _failure(path):
    errors = ErrorList()
    errors.add_exception(ErrorKind.PARSE, "XML mal formado en factura.xml", ValueError("línea 3"))
    errors.add_exception(ErrorKind.SIGNING, "No se pudo firmar", RuntimeError("clave"))
    return DocumentOutcome(path=path, errors=errors)


def _listing(directory):
    return sorted(p.name for p in directory.iterdir())


def test_decide():
    assert OutcomeRouter.decide(ErrorList()) is Route.SUCCESS
    errors = ErrorList()
    errors.add_exception(ErrorKind.INTERNAL, "x", ValueError())
    assert OutcomeRouter.decide(errors) is Route.ERROR


def test_success_outputs(router, source, batch_dirs, sink):
    result = router.route(_success(source))

    assert result.route is Route.SUCCESS
    assert _listing(batch_dirs["success"]) == ["factura.signed.xml", "factura.verify-request.xml"]
    assert _listing(batch_dirs["error"]) == []
    assert not source.exists()
    assert (batch_dirs["success"] / "factura.signed.xml").read_bytes().startswith(b"<Factura>")

    routed = sink.events("document.routed")
    assert routed == [{
        "file": "factura.xml",
        "route": "success",
        "outputs": ["factura.signed.xml", "factura.verify-request.xml"],
        "errors": 0,
        "source_consumed": True,
    }]


def test_error_outputs(router, source, batch_dirs):
    """Copia del original y reporte JSON con todos los errores."""
    result = router.route(_failure(source))

    assert result.route is Route.ERROR
    assert _listing(batch_dirs["error"]) == ["factura.xml", "factura.xml.errors.json"]
    assert _listing(batch_dirs["success"]) == []
    assert not source.exists()
    assert (batch_dirs["error"] / "factura.xml").read_text(encoding="utf-8") == "<Factura/>"

    report = json.loads((batch_dirs["error"] / "factura.xml.errors.json").read_text(encoding="utf-8"))
    assert report["file"] == "factura.xml"
    assert report["error_count"] == 2
    assert [e["kind"] for e in report["errors"]] == ["parse", "signing"]
    assert report["errors"][0]["cause"] == "línea 3"
    assert report["errors"][1]["cause_type"] == "RuntimeError"


def test_never_overwrites(router, batch_dirs):
    """Una salida existente no se pisa: ambas salidas reciben el mismo sufijo."""
    existing = batch_dirs["success"] / "factura.signed.xml"
    existing.write_text("anterior")

    source = batch_dirs["outgoing"] / "factura.xml"
    source.write_text("<Factura/>")
    result = router.route(_success(source))

    assert existing.read_text() == "anterior"
    signed_output, request_output = result.outputs
    assert signed_output != existing
    assert signed_output.name.startswith("factura_")
    assert signed_output.name.endswith(".signed.xml")
    assert request_output.name.endswith(".verify-request.xml")
    assert signed_output.name[:-len(".signed.xml")] == request_output.name[:-len(".verify-request.xml")]
    assert len(list(batch_dirs["success"].iterdir())) == 3


def test_sources_sharing_first_segment(router, batch_dirs):
    """inv.1.xml e inv.2.xml generan salidas distintas y emparejadas."""
    outgoing = batch_dirs["outgoing"]
    for name in ("inv.1.xml", "inv.2.xml"):
        (outgoing / name).write_text("<Factura/>")
        router.route(_success(outgoing / name))

    assert _listing(batch_dirs["success"]) == [
        "inv.1.signed.xml", "inv.1.verify-request.xml",
        "inv.2.signed.xml", "inv.2.verify-request.xml",
    ]


def test_error_collision_keeps_pair(router, batch_dirs):
    """En error, la copia y su reporte comparten sufijo."""
    (batch_dirs["error"] / "factura.xml").write_text("anterior")
    source = batch_dirs["outgoing"] / "factura.xml"
    source.write_text("<Factura/>")

    copy, report = router.route(_failure(source)).outputs

    assert copy.name.startswith("factura_") and copy.name.endswith(".xml")
    assert report.name == f"{copy.name}.errors.json"
    assert (batch_dirs["error"] / "factura.xml").read_text() == "anterior"


def test_no_temp_files_left(router, source, batch_dirs):
    router.route(_success(source))
    assert _listing(batch_dirs["success"]) == ["factura.signed.xml", "factura.verify-request.xml"]


def test_success_without_artifacts(router, source):
    with pytest.raises(ValueError):
        router.route(DocumentOutcome(path=source, errors=ErrorList()))
    assert source.exists()


def _replace_failing_on_second(monkeypatch, exc):
    original = os.replace
    calls = []

    def flaky(src, dst):
        calls.append(dst)
        if len(calls) == 2:
            raise exc
        return original(src, dst)

    monkeypatch.setattr(os, "replace", flaky)


def test_partial_write_rolled_back(router, source, batch_dirs, monkeypatch):
    """Si falla la segunda salida se retira la primera y el fuente queda."""
    _replace_failing_on_second(monkeypatch, OSError("disco lleno"))

    with pytest.raises(RoutingError, match="disco lleno"):
        router.route(_success(source))

    assert _listing(batch_dirs["success"]) == []
    assert source.exists()


def test_interrupted_publish_rolled_back(router, source, batch_dirs, monkeypatch):
    """Una interrupción entre las dos salidas no deja una firmada suelta."""
    _replace_failing_on_second(monkeypatch, KeyboardInterrupt())

    with pytest.raises(KeyboardInterrupt):
        router.route(_success(source))

    assert _listing(batch_dirs["success"]) == []
    assert source.exists()


def test_undeletable_source_reported(router, source, batch_dirs, sink, monkeypatch):
    original_unlink = Path.unlink

    def locked_unlink(self, missing_ok=False):
        if self == source:
            raise PermissionError("bloqueado")
        return original_unlink(self, missing_ok=missing_ok)

    monkeypatch.setattr(Path, "unlink", locked_unlink)

    result = router.route(_success(source))

    assert result.route is Route.SUCCESS
    assert not result.source_consumed
    assert "PermissionError" in result.source_error
    assert source.exists()
    assert "No se pudo eliminar el archivo fuente" in sink.messages("warning")


def test_missing_source_still_reported(router, batch_dirs):
    """Un fuente que ya no existe igual deja su reporte de errores."""
    ghost = batch_dirs["outgoing"] / "fantasma.xml"
    result = router.route(_failure(ghost))
    assert result.route is Route.ERROR
    assert _listing(batch_dirs["error"]) == ["fantasma.xml.errors.json"]
