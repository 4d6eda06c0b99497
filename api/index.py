from mangum import Mangum
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from orderledger.api import create_app
from orderledger.config import get_settings
from orderledger.logging_config import setup_logging

settings = get_settings()
setup_logging(settings)

app = create_app(settings, root_path="/api")

handler = Mangum(app)
