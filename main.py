# main.py
"""
Behavior Sentinel - Exam Behavior Anomaly Detection
Entry point for local demonstration.

Modes:
1. serve     - run the FastAPI adapter with uvicorn (port 8000)
2. simulate  - stream synthetic telemetry for several sessions of one
               exam to a running server and print periodic risk scores
3. demo      - launch both in separate processes

Use Ctrl+C to terminate.
"""

import argparse
import logging
import math
import multiprocessing
import os
import random
import sys
import time
import uuid

# Add project root to Python path
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

logger = logging.getLogger("behavior_sentinel")


# ----------------------------------------------------------------------
# Configuration
# ----------------------------------------------------------------------

class Config:
    """Configuration settings for Behavior Sentinel."""

    # Server settings
    SERVER_HOST = os.environ.get("BEHAVIOR_SENTINEL_HOST", "127.0.0.1")
    SERVER_PORT = int(os.environ.get("BEHAVIOR_SENTINEL_PORT", "8000"))

    # Simulator settings
    EXAM_ID = "demoexam"
    SESSION_COUNT = 3            # Concurrent sessions in the simulated exam
    ANALYZE_INTERVAL = 5         # Seconds between analyze calls
    SIMULATION_DURATION = 60     # Seconds
    TICK = 0.05                  # Seconds between synthetic samples
    ROBOTIC_SESSION = True       # Script the first session as a bot

    # Logging
    LOG_LEVEL = os.environ.get("BEHAVIOR_SENTINEL_LOG_LEVEL", "INFO")

    @classmethod
    def server_url(cls) -> str:
        return f"http://{cls.SERVER_HOST}:{cls.SERVER_PORT}"


def configure_logging():
    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ----------------------------------------------------------------------
# 1. FastAPI Server Process
# ----------------------------------------------------------------------

def run_server(port: int = None):
    """Start Uvicorn server for the FastAPI application."""
    configure_logging()
    if port is not None:
        Config.SERVER_PORT = port

    import uvicorn
    from server.api import app

    logger.info(f"[Server] Starting on {Config.server_url()}")
    uvicorn.run(
        app,
        host=Config.SERVER_HOST,
        port=Config.SERVER_PORT,
        log_level="info"
    )


# ----------------------------------------------------------------------
# 2. Telemetry Simulator
# ----------------------------------------------------------------------

class SyntheticSession:
    """Generates plausible (or deliberately robotic) telemetry for one session."""

    def __init__(self, session_id: str, robotic: bool = False):
        self.session_id = session_id
        self.robotic = robotic
        self.x = random.uniform(200, 800)
        self.y = random.uniform(200, 600)
        self.question = 0

    def next_mouse(self):
        if self.robotic:
            self.x += 5.0
        else:
            angle = random.uniform(0, 2 * math.pi)
            step = random.uniform(0, 25)
            self.x += step * math.cos(angle)
            self.y += step * math.sin(angle)
        return {"x": self.x, "y": self.y}

    def next_keystroke(self):
        if self.robotic:
            return {"key": "a", "holdDurationMs": 80.0}
        key = "Backspace" if random.random() < 0.05 else random.choice("abcdefghijklmnopqrstuvwxyz ")
        return {"key": key, "holdDurationMs": random.uniform(60, 140)}

    def next_gaze(self):
        return {
            "x": random.gauss(640, 120),
            "y": random.gauss(360, 80),
            "confidence": random.uniform(0.3, 0.6) if self.robotic else random.uniform(0.7, 1.0),
            "pupilDilation": random.uniform(0.3, 0.6),
            "blinkRate": random.uniform(10, 20),
        }

    def next_time_pattern(self, now_ms: float):
        self.question += 1
        spent = 3000 if self.robotic else random.uniform(20_000, 90_000)
        return {
            "questionId": f"q{self.question}",
            "startTime": now_ms - spent,
            "endTime": now_ms,
            "answerLength": 120 if self.robotic else random.randint(10, 200),
            "hesitationCount": random.randint(0, 3),
            "revisionCount": random.randint(0, 2),
        }


def _risk_marker(score: float) -> str:
    if score >= 80:
        return "🔴"
    elif score >= 60:
        return "🟠"
    elif score >= 40:
        return "🟡"
    return "🟢"


def run_simulation(duration: int = Config.SIMULATION_DURATION):
    """Stream synthetic telemetry for one exam and print periodic analysis."""
    configure_logging()
    import requests

    base = Config.server_url()
    http = requests.Session()

    # Wait for server to be ready
    for _ in range(10):
        try:
            if http.get(f"{base}/health", timeout=1).status_code == 200:
                logger.info("[Simulator] Server connection established")
                break
        except requests.exceptions.ConnectionError:
            pass
        time.sleep(1)
    else:
        logger.error(f"[Simulator] Server not responding at {base}")
        return

    sessions = [
        SyntheticSession(
            f"{Config.EXAM_ID}_user{i + 1}_{uuid.uuid4().hex[:8]}",
            robotic=Config.ROBOTIC_SESSION and i == 0,
        )
        for i in range(Config.SESSION_COUNT)
    ]
    for s in sessions:
        http.post(f"{base}/sessions/{s.session_id}", json={}, timeout=2).raise_for_status()
        logger.info(f"[Simulator] Session {s.session_id} started{' (robotic)' if s.robotic else ''}")

    start = time.time()
    last_analysis = start
    tick = 0
    try:
        while time.time() - start < duration:
            tick += 1
            now_ms = time.time() * 1000.0
            for s in sessions:
                http.post(f"{base}/sessions/{s.session_id}/mouse", json=s.next_mouse(), timeout=2)
                http.post(f"{base}/sessions/{s.session_id}/keystrokes", json=s.next_keystroke(), timeout=2)
                if tick % 5 == 0:
                    http.post(f"{base}/sessions/{s.session_id}/gaze", json=s.next_gaze(), timeout=2)
                if tick % 40 == 0:
                    http.post(f"{base}/sessions/{s.session_id}/time-patterns",
                              json=s.next_time_pattern(now_ms), timeout=2)

            if time.time() - last_analysis >= Config.ANALYZE_INTERVAL:
                last_analysis = time.time()
                for s in sessions:
                    resp = http.post(f"{base}/sessions/{s.session_id}/analyze", timeout=5)
                    if resp.status_code != 200:
                        logger.warning(f"[Simulator] Analyze failed: {resp.status_code}")
                        continue
                    result = resp.json()["result"]
                    score = result["anomalyScore"]
                    print(f"{_risk_marker(score)} {s.session_id}: score={score:.1f} "
                          f"risk={result['riskLevel']} patterns={result['detectedPatterns']}")

            time.sleep(Config.TICK)

    except KeyboardInterrupt:
        logger.info("[Simulator] Received shutdown signal")
    except requests.exceptions.RequestException as e:
        logger.error(f"[Simulator] Lost connection to server: {e}")
    finally:
        for s in sessions:
            try:
                summary = http.get(f"{base}/sessions/{s.session_id}/summary", timeout=2)
                if summary.status_code == 200:
                    data = summary.json()
                    print(f"📊 {s.session_id}: analyses={data['analysisCount']} "
                          f"avg={data['averageScore']:.1f} max={data['maxScore']:.1f}")
                http.delete(f"{base}/sessions/{s.session_id}", timeout=2)
            except requests.exceptions.RequestException:
                break


# ----------------------------------------------------------------------
# 3. Main Orchestrator
# ----------------------------------------------------------------------

def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Behavior Sentinel - exam behavior anomaly detection")
    parser.add_argument("mode", nargs="?", choices=["serve", "simulate", "demo"], default="demo",
                        help="What to run (default: demo = server + simulator)")
    parser.add_argument("--port", type=int, default=Config.SERVER_PORT,
                        help=f"Server port (default: {Config.SERVER_PORT})")
    parser.add_argument("--sessions", type=int, default=Config.SESSION_COUNT,
                        help=f"Simulated sessions in the exam (default: {Config.SESSION_COUNT})")
    parser.add_argument("--interval", type=int, default=Config.ANALYZE_INTERVAL,
                        help=f"Analyze interval in seconds (default: {Config.ANALYZE_INTERVAL})")
    parser.add_argument("--duration", type=int, default=Config.SIMULATION_DURATION,
                        help=f"Simulation length in seconds (default: {Config.SIMULATION_DURATION})")
    parser.add_argument("--no-robot", action="store_true",
                        help="Do not script a robotic session")
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = parse_arguments()

    Config.SERVER_PORT = args.port
    Config.SESSION_COUNT = args.sessions
    Config.ANALYZE_INTERVAL = args.interval
    Config.ROBOTIC_SESSION = not args.no_robot

    if args.mode == "serve":
        run_server()
        sys.exit(0)

    if args.mode == "simulate":
        run_simulation(args.duration)
        sys.exit(0)

    print("\n" + "=" * 70)
    print("🛡️  BEHAVIOR SENTINEL - Exam Behavior Anomaly Detection")
    print("=" * 70)
    print(f"Server: {Config.server_url()}")
    print(f"Sessions: {Config.SESSION_COUNT} | Analyze interval: {Config.ANALYZE_INTERVAL}s")
    print("=" * 70 + "\n")

    try:
        multiprocessing.set_start_method("spawn", force=True)
    except RuntimeError:
        pass

    server_process = multiprocessing.Process(target=run_server, kwargs={"port": Config.SERVER_PORT}, name="Server")
    server_process.start()
    time.sleep(2)  # Give server time to start

    try:
        run_simulation(args.duration)
    except KeyboardInterrupt:
        print("\n[Main] ⚡ Shutdown signal received")
    finally:
        if server_process.is_alive():
            print(f"[Main] Terminating {server_process.name}...")
            server_process.terminate()
            server_process.join(timeout=3.0)
        print("[Main] ✅ Shutdown complete")
