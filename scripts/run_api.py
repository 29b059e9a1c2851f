import subprocess
import sys
import os
from pathlib import Path


def main():
    project_root = Path(__file__).parent.parent
    os.chdir(project_root)

    # Ensure src is in python path
    env = os.environ.copy()
    src_path = str(project_root / "src")
    if "PYTHONPATH" in env:
        env["PYTHONPATH"] = f"{src_path}{os.pathsep}{env['PYTHONPATH']}"
    else:
        env["PYTHONPATH"] = src_path

    host = env.get("CRM_CONSOLE_HOST", "0.0.0.0")
    port = env.get("CRM_CONSOLE_PORT", "8000")
    command = [
        sys.executable, "-m", "uvicorn", "crm_console.api.main:app",
        "--host", host,
        "--port", port,
        "--log-level", env.get("CRM_CONSOLE_LOG_LEVEL", "info").lower(),
    ]
    # Auto-reload is for local development; CRM_CONSOLE_RELOAD=0 turns it off
    if env.get("CRM_CONSOLE_RELOAD", "1") != "0":
        command += ["--reload", "--reload-dir", src_path]

    print(f"Starting CRM Console API on http://{host}:{port} (data: {env.get('CRM_CONSOLE_DATA_DIR', 'data/')})")
    try:
        subprocess.run(command, env=env)
    except KeyboardInterrupt:
        print("\nAPI stopped.")


if __name__ == "__main__":
    main()
