"""
Cloud-init Userdata Adapter

Architectural Intent:
- Infrastructure adapter implementing UserdataPort
- Renders a ``#cloud-config`` document that creates the stack user,
  writes the management agent's identity and key, and runs the user's
  own script after the agent is configured
- Uses PyYAML for serialization
"""

from __future__ import annotations
import json
import logging
import shlex
from pathlib import PurePosixPath

import yaml

from stackweaver.domain.ports.userdata_port import CloudInitConfig, UserdataPort

logger = logging.getLogger(__name__)

AGENT_ID_PATH = "/etc/stackweaver/agent.id"
USER_SCRIPT_PATH = "/var/lib/stackweaver/user-data.sh"


class CloudInitUserdata(UserdataPort):
    def __init__(self, agent_id_path: str = AGENT_ID_PATH):
        self._agent_id_path = agent_id_path
        self._agent_conf_path = str(PurePosixPath(agent_id_path).with_name("agent.json"))

    def create(self, config: CloudInitConfig) -> bytes:
        agent_conf = {
            "id": config.agent_id,
            "key": config.agent_key,
            "registerURL": config.register_url,
            "username": config.username,
        }
        files = [
            {
                "path": self._agent_id_path,
                "content": config.agent_id + "\n",
                "permissions": "0644",
            },
            {
                "path": self._agent_conf_path,
                "content": json.dumps(agent_conf, sort_keys=True) + "\n",
                "permissions": "0600",
            },
        ]
        runcmd = []
        if config.user_data.strip():
            files.append({
                "path": USER_SCRIPT_PATH,
                "content": config.user_data,
                "permissions": "0755",
            })
            runcmd.append(
                ["su", "-l", config.username, "-c", shlex.quote(USER_SCRIPT_PATH)]
            )

        doc = {
            "hostname": config.hostname,
            "users": [
                "default",
                {
                    "name": config.username,
                    "groups": ", ".join(config.groups),
                    "shell": "/bin/bash",
                    "sudo": "ALL=(ALL) NOPASSWD:ALL",
                },
            ],
            "write_files": files,
            "runcmd": runcmd,
        }
        body = yaml.safe_dump(doc, default_flow_style=False, sort_keys=False)
        logger.debug("Rendered cloud-init for agent %s", config.agent_id)
        return ("#cloud-config\n" + body).encode("utf-8")
