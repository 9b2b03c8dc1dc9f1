from __future__ import annotations

# Hugging Face Spaces entrypoint for Gradio
# Exposes a global `demo` variable that HF will serve.

from amigurumi.config import setup_logging
from scripts.gradio_app import app as create_app

setup_logging()
demo = create_app().queue()
