import os

import billing_config as cfg
from billing_server import app


if __name__ == '__main__':
    cfg.setup_logging()
    debug = os.getenv('FLASK_DEBUG', '0') == '1'
    port = int(os.getenv('PORT', '5000'))
    host = os.getenv('HOST', '0.0.0.0')
    app.run(host=host, port=port, debug=debug)
