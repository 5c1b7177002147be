import uvicorn
from masyavpn.main import app
from masyavpn.logging_utility import logger


if __name__=='__main__':
    logger.info("Starting MasyaVPN tunnel service")
    uvicorn.run(app, host="127.0.0.1", port=8000)
