"""Тесты рендеринга шаблонов Jinja2."""

import pytest

from network_deployer.configurator import TemplateRenderer
from network_deployer.core.exceptions import TemplateError, UndefinedVariableError


class TestTemplateRenderer:

    def test_render_file(self, renderer):
        text = renderer.render("ntp.j2", {"ntp_servers": ["10.10.0.1", "10.10.0.2"]})

        assert text == "ntp server 10.10.0.1\nntp server 10.10.0.2\n"

    def test_render_device_context(self, renderer):
        text = renderer.render("banner.j2", {"device": {"name": "sw1"}, "site": "nyc"})

        assert text == "banner motd ^sw1 (nyc)^\n"

    def test_undefined_variable_is_error(self, renderer):
        with pytest.raises(UndefinedVariableError) as exc_info:
            renderer.render("banner.j2", {"device": {"name": "sw1"}})

        assert "site" in str(exc_info.value)
        assert exc_info.value.details["template_id"] == "banner.j2"

    def test_template_not_found(self, renderer):
        with pytest.raises(TemplateError, match="не найден"):
            renderer.render("missing.j2")

    def test_syntax_error(self, templates_dir):
        (templates_dir / "broken.j2").write_text("{% for x in %}\n", encoding="utf-8")

        with pytest.raises(TemplateError, match="Синтаксическая ошибка"):
            TemplateRenderer(templates_dir).render("broken.j2", {})

    def test_render_string(self, renderer):
        text = renderer.render_string(
            "{% for s in servers %}logging host {{ s }}\n{% endfor %}",
            {"servers": ["10.1.1.1"]},
        )

        assert text == "logging host 10.1.1.1\n"

    def test_render_string_undefined(self, renderer):
        with pytest.raises(UndefinedVariableError):
            renderer.render_string("snmp-server location {{ location }}\n", {}, template_id="baseline")

    def test_undefined_is_template_error(self, renderer):
        """UndefinedVariableError — частный случай TemplateError."""
        with pytest.raises(TemplateError):
            renderer.render_string("{{ missing }}", {})

    def test_list_templates(self, renderer, tmp_path):
        assert renderer.list_templates() == ["banner.j2", "ntp.j2"]
        assert TemplateRenderer(tmp_path / "nope").list_templates() == []

    def test_variables_of(self, renderer):
        assert renderer.variables_of("banner.j2") == ["device", "site"]
