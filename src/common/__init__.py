from common.ids import generate_id
from common.jsonio import atomic_write_json, read_json
from common.text_template import render_template

__all__ = ["generate_id", "read_json", "atomic_write_json", "render_template"]
