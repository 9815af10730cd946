import json
import os
import shutil
import tempfile

import pytest

from protoc_decoder.generator.exporter import UTF8_BOM
from protoc_decoder.main import main, run


PROTO_CONTENT = """\
syntax = "proto3";

package order;

message OrderInfo {
    int32 order_id = 1;
    string customer_name = 2;
    bool is_active = 3;
    repeated OrderItem items = 4;
    Status status = 5;

    message OrderItem {
        int32 item_id = 1;
        string item_name = 2;
        double price = 3;
    }

    enum Status {
        UNKNOWN = 0;
        OPEN = 1;
        FILLED = 2;
    }
}
"""

# order_id=7, customer_name="ann", is_active=true,
# items=[{item_id=1, item_name="pen"}, {item_id=2}], status=FILLED
ORDER_HEX = "0807120361 6e6e1801 2207 0801 1203 70656e 2202 0802 2802".replace(" ", "")


class TestFullPipeline:
    def setup_method(self):
        self.work_dir = tempfile.mkdtemp()
        self.proto_path = os.path.join(self.work_dir, "order.proto")
        with open(self.proto_path, "w") as f:
            f.write(PROTO_CONTENT)

    def teardown_method(self):
        shutil.rmtree(self.work_dir)

    def test_schema_less_json(self, capsys):
        assert run("089601") == 0
        out = capsys.readouterr().out
        assert json.loads(out) == {"unknown_field_1": 150}

    def test_json_with_schema(self, capsys):
        assert run(ORDER_HEX, schema_path=self.proto_path) == 0
        out = capsys.readouterr().out
        assert json.loads(out) == {
            "order_id": 7,
            "customer_name": "ann",
            "is_active": 1,
            "items": [{"item_id": 1, "item_name": "pen"}, {"item_id": 2}],
            "status": "FILLED",
        }

    def test_csv_with_schema(self, capsys):
        assert run(ORDER_HEX, schema_path=self.proto_path, output="csv") == 0
        out = capsys.readouterr().out
        assert out.startswith(UTF8_BOM)
        assert '"  item_name","string","pen"' in out

    def test_report(self, capsys):
        assert run(ORDER_HEX, schema_path=self.proto_path, output="report") == 0
        out = capsys.readouterr().out
        assert "Fields: 6 top-level, 9 total" in out
        assert "  root.items[1].item_id -> " in out

    def test_paths(self, capsys):
        assert run("089601", output="paths") == 0
        assert capsys.readouterr().out == "root.unknown_field_1 0-2\n"

    def test_paths_at_offset(self, capsys):
        assert run(ORDER_HEX, schema_path=self.proto_path, output="paths", at_offset=14) == 0
        lines = capsys.readouterr().out.splitlines()
        assert lines[0].startswith("root.items[0] ")
        assert lines[1].startswith("root.items[0].item_name ")

    def test_out_file(self, capsys):
        out_path = os.path.join(self.work_dir, "result.json")
        assert run("089601", out_path=out_path) == 0
        assert capsys.readouterr().out == f"Wrote json to {out_path}\n"
        with open(out_path, encoding="utf-8") as f:
            assert json.load(f) == {"unknown_field_1": 150}

    def test_binary_file_input(self, capsys):
        data_path = os.path.join(self.work_dir, "capture.bin")
        with open(data_path, "wb") as f:
            f.write(b"\x08\x96\x01")
        assert run(f"@{data_path}", fmt="binary") == 0
        assert json.loads(capsys.readouterr().out) == {"unknown_field_1": 150}

    def test_hex_file_input(self, capsys):
        data_path = os.path.join(self.work_dir, "capture.txt")
        with open(data_path, "w") as f:
            f.write("08 96 01\n")
        assert run(f"@{data_path}") == 0
        assert json.loads(capsys.readouterr().out) == {"unknown_field_1": 150}

    def test_base64_input(self, capsys):
        assert run("CJYB", fmt="base64") == 0
        assert json.loads(capsys.readouterr().out) == {"unknown_field_1": 150}

    def test_message_selection(self, capsys):
        assert run("0803", schema_path=self.proto_path, message_name="OrderItem") == 0
        assert json.loads(capsys.readouterr().out) == {"item_id": 3}


class TestErrorReporting:
    def test_invalid_input(self, capsys):
        assert run("--") == 1
        err = capsys.readouterr().err
        assert err == "Invalid input: Input contains no valid hexadecimal characters.\n"

    def test_binary_needs_file(self, capsys):
        assert run("089601", fmt="binary") == 1
        assert "must be read from a file" in capsys.readouterr().err

    def test_non_hex_letters_rejected(self, capsys):
        assert run("08 ZZ") == 1
        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err == "Invalid input: Invalid hex character 'Z' at position 3\n"

    def test_partial_decode_points_at_input(self, capsys):
        assert run("08 96 01 0b 01") == 2
        captured = capsys.readouterr()
        assert json.loads(captured.out) == {"unknown_field_1": 150}
        assert "Unsupported wire type 3 at byte 4." in captured.err
        assert "Unparsed bytes: 01" in captured.err
        assert "Decoding stopped at input characters 12-14" in captured.err

    def test_base_offset_shifts_error(self, capsys):
        assert run("08", base_offset=100) == 2
        assert "at byte 101." in capsys.readouterr().err


class TestMain:
    def test_defaults(self, capsys):
        assert main(["089601"]) == 0
        assert json.loads(capsys.readouterr().out) == {"unknown_field_1": 150}

    def test_flags(self, tmp_path, capsys):
        schema = tmp_path / "t.proto"
        schema.write_text("message T { sint32 delta = 1; }")
        assert main(["0803", "--schema", str(schema), "--output", "paths", "--verbose"]) == 0
        assert capsys.readouterr().out == "root.delta 0-1\n"

    def test_negative_base_offset_rejected(self):
        with pytest.raises(SystemExit) as excinfo:
            main(["08", "--base-offset", "-1"])
        assert excinfo.value.code == 2

    def test_unknown_output_rejected(self):
        with pytest.raises(SystemExit):
            main(["08", "--output", "xml"])
