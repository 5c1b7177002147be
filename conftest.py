import os
import tempfile

# Keep the diagnostic log and engine config out of the real user profile
os.environ.setdefault("MASYAVPN_DATA_DIR", tempfile.mkdtemp(prefix="masyavpn-test-"))
