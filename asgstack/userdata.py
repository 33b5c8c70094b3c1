# This file is part of asgstack. See LICENSE file for license information.
"""User data booting the sample Flask application.

Instances run Ubuntu; cloud-init installs Flask and Gunicorn in a
virtualenv and runs the app as a systemd service.
"""

import textwrap

import yaml

APP_DIR = "/opt/flask-app"

FLASK_APP = textwrap.dedent(
    """\
    import socket

    from flask import Flask, jsonify

    app = Flask(__name__)


    @app.route("/")
    def index():
        return "Hello from {}\\n".format(socket.gethostname())


    @app.route("/health")
    def health():
        return jsonify(status="ok")
    """
)

SERVICE_UNIT = textwrap.dedent(
    """\
    [Unit]
    Description=Sample Flask application
    After=network-online.target

    [Service]
    WorkingDirectory={app_dir}
    ExecStart={app_dir}/venv/bin/gunicorn -w {workers} -b 0.0.0.0:{port} app:app
    Restart=always

    [Install]
    WantedBy=multi-user.target
    """
)


def flask_app_user_data(port=80, workers=2, public_key=None) -> str:
    """Render the #cloud-config that installs and starts the Flask app.

    Args:
        port: port Gunicorn binds to
        workers: number of Gunicorn workers
        public_key: optional SSH public key added to the default user

    Returns:
        cloud-config document as a string
    """
    cloud_config = {
        "package_update": True,
        "packages": ["python3-pip", "python3-venv"],
        "write_files": [
            {"path": "{}/app.py".format(APP_DIR), "content": FLASK_APP},
            {
                "path": "/etc/systemd/system/flask-app.service",
                "content": SERVICE_UNIT.format(
                    app_dir=APP_DIR, workers=workers, port=port
                ),
            },
        ],
        "runcmd": [
            ["python3", "-m", "venv", "{}/venv".format(APP_DIR)],
            [
                "{}/venv/bin/pip".format(APP_DIR),
                "install",
                "flask",
                "gunicorn",
            ],
            ["systemctl", "daemon-reload"],
            ["systemctl", "enable", "--now", "flask-app.service"],
        ],
    }
    if public_key:
        cloud_config["ssh_authorized_keys"] = [public_key]
    # pyyaml will "helpfully" split long lines on dump, which we do not want.
    # Use an absurdly large width to ensure the yaml is written correctly.
    return "#cloud-config\n" + yaml.safe_dump(
        cloud_config, width=999999999, sort_keys=False
    )
