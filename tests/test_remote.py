"""Tests for module record script extraction."""

import pytest

from lm_module_sync.sync.models import ScriptRole
from lm_module_sync.sync.remote import extract_script_content, script_language

from conftest import COLLECTION_SCRIPT, DISCOVERY_SCRIPT, make_record


class TestExtractScriptContent:
    def test_datasource_collection(self):
        record = make_record()
        assert (
            extract_script_content(record, "datasource", ScriptRole.COLLECTION)
            == COLLECTION_SCRIPT
        )

    def test_discovery_from_auto_discovery_config(self):
        assert extract_script_content(make_record(), "datasource", "ad") == DISCOVERY_SCRIPT

    @pytest.mark.parametrize(
        "module_type", ["propertysource", "diagnosticsource", "eventsource"]
    )
    def test_top_level_groovy_script(self, module_type):
        record = {"groovyScript": "return 1"}
        assert (
            extract_script_content(record, module_type, ScriptRole.COLLECTION)
            == "return 1"
        )

    def test_logsource(self):
        record = {"collectionAttribute": {"script": {"embeddedContent": "log()"}}}
        assert extract_script_content(record, "logsource", "collection") == "log()"

    def test_logsource_groovy_fallback(self):
        record = {"collectionAttribute": {"groovyScript": "fallback()"}}
        assert extract_script_content(record, "logsource", "collection") == "fallback()"

    def test_absent_script_is_empty(self):
        assert extract_script_content({}, "datasource", "ad") == ""
        assert extract_script_content({"collectorAttribute": None}, "configsource", "collection") == ""


class TestScriptLanguage:
    def test_embedded_groovy(self):
        assert script_language(make_record(), "datasource", "collection") == "groovy"

    def test_powershell_collection(self):
        record = make_record(
            collectorAttribute={"scriptType": "powerShell", "groovyScript": "x"}
        )
        assert script_language(record, "datasource", "collection") == "powershell"

    def test_discovery_always_groovy(self):
        record = make_record(scriptType="powershell")
        assert script_language(record, "datasource", "ad") == "groovy"

    def test_propertysource_groovy(self):
        assert script_language({"scriptType": "powershell"}, "propertysource", "collection") == "groovy"
