import sys
from pathlib import Path
import pytest

# Ensure project root is on sys.path so tests can import the `partides` package
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def reset_engine():
	# Each test injects its own engine; drop it afterwards so none leaks into the next test
	yield
	try:
		from partides.main import app
		engine = getattr(app.state, "engine", None)
		if engine is not None:
			engine.dispose()
			del app.state.engine
	except Exception:
		pass
