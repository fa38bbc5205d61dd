"""
Tests for the command line interface.
"""

import json

from click.testing import CliRunner
from loguru import logger

from ocr_ia.cli import main


class TestCLI:
    """Tests for the text commands."""

    def setup_method(self):
        self.runner = CliRunner()

    def teardown_method(self):
        # The CLI points loguru at the runner's captured stderr
        logger.remove()

    def test_schemas(self):
        result = self.runner.invoke(main, ['schemas'])
        assert result.exit_code == 0
        assert 'generic' in result.stdout

    def test_entities_json(self):
        result = self.runner.invoke(main, ['entities', '--json', '-'], input="Loi n° 12-34 du 5 janvier 2020\n")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        values = [e['value'] for e in data['entities']]
        assert '12-34' in values
        assert '05/01/2020' in values

    def test_entities_threshold(self):
        result = self.runner.invoke(
            main, ['entities', '--json', '--threshold', '1.01', '-'], input="Loi n° 12-34 du 5 janvier 2020\n",
        )
        assert result.exit_code == 0
        assert json.loads(result.stdout)['entities'] == []

    def test_relations_json(self):
        text = "Vu la loi n° 90-11 du 21 avril 1990 ;\nVu le décret exécutif n° 17-20 du 10 janvier 2017 ;\n"
        result = self.runner.invoke(main, ['relations', '--json', '-'], input=text)

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert len(data) == 2
        assert data[0]['type'] == 'vu'

    def test_map_writes_report(self, tmp_path):
        output = tmp_path / "mapping.json"
        result = self.runner.invoke(
            main,
            ['map', '--schema', 'civil_status', '--output', str(output), '-'],
            input="Nom: BENALI\nPrénom: Ahmed\n",
        )

        assert result.exit_code == 0
        assert 'BENALI' in result.stdout
        data = json.loads(output.read_text(encoding='utf-8'))
        assert data['mapping']['form_id'] == 'civil_status'
        values = {s['field_id']: s['value'] for s in data['mapping']['suggestions']}
        assert values['nom'] == 'BENALI'
        assert data['quality']['total_fields'] == len(values)

    def test_empty_input(self):
        result = self.runner.invoke(main, ['entities', '-'], input="   \n")
        assert result.exit_code == 2

    def test_extra_schemas(self, tmp_path):
        path = tmp_path / "forms.yaml"
        path.write_text("id: permis\nname: Permis\nfields:\n  - id: demandeur\n    name: demandeur\n", encoding='utf-8')

        result = self.runner.invoke(main, ['--schemas', str(path), 'schemas'])

        assert result.exit_code == 0
        assert 'permis' in result.stdout

    def test_extract_unsupported_format(self, tmp_path):
        path = tmp_path / "document.docx"
        path.write_bytes(b"not a document")

        result = self.runner.invoke(main, ['extract', str(path)])

        assert result.exit_code == 1
