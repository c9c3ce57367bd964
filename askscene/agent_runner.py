from __future__ import annotations
import argparse
import asyncio
import json
import os
from typing import Any, Dict, List, Optional, Sequence

from askscene.adapters.cue import BeepCue
from askscene.adapters.stt import WhisperRecognizerAdapter
from askscene.adapters.tts import SpeechOutputAdapter
from askscene.config import load_config
from askscene.controller import VoiceQueryController
from askscene.event_bus import EventBus
from askscene.infrastructure.errors import ConfigError
from askscene.infrastructure.observability import log
from askscene.infrastructure.scheduler import AsyncioScheduler
from askscene.infrastructure.session_log import SessionLog
from askscene.utils.keypress import CrossPlatformKeypress

SCENE_REPLAY_INTERVAL = 1.0


def load_scene_frames(path: str) -> List[List[Dict[str, Any]]]:
	"""
	A scene file is either one snapshot (a list of tracked objects) or
	{"frames": [snapshot, ...]} replayed in a loop.
	"""
	with open(path, "r", encoding="utf-8") as f:
		data = json.load(f)
	if isinstance(data, dict):
		frames = data.get("frames")
		if not isinstance(frames, list):
			raise ConfigError(f"{path}: expected a 'frames' list")
		return frames
	if isinstance(data, list):
		if data and all(isinstance(item, list) for item in data):
			return data
		return [data]
	raise ConfigError(f"{path}: expected a list of objects or a 'frames' mapping")


async def scene_replay_loop(controller: VoiceQueryController, frames: Sequence[List[Dict[str, Any]]], interval: float = SCENE_REPLAY_INTERVAL) -> None:
	index = 0
	while True:
		controller.update_important_objects(frames[index % len(frames)])
		index += 1
		await asyncio.sleep(interval)


async def run_agent(args: argparse.Namespace) -> int:
	config = load_config(args.config)
	event_bus = EventBus()
	session_log = SessionLog(args.log_dir)
	await session_log.attach(event_bus)

	scheduler = AsyncioScheduler()
	output = SpeechOutputAdapter()
	recognizer = WhisperRecognizerAdapter(model_size=args.model_size)
	controller = VoiceQueryController(scheduler, recognizer, output, BeepCue(), config=config, bus=event_bus)
	controller.refresh_capability()

	replay_task: Optional[asyncio.Task] = None
	if args.scene_file:
		frames = load_scene_frames(args.scene_file)
		replay_task = asyncio.create_task(scene_replay_loop(controller, frames))
		log("runner.scene_replay", {"file": args.scene_file, "frames": len(frames)})

	try:
		keys = CrossPlatformKeypress()
	except RuntimeError as e:
		log("runner.keyboard_unavailable", {"error": str(e)}, level="error")
		return 1

	log("Ready. Controls: r=ask a question, c=toggle continuous listening, s=stats, q=quit")
	last_error: Optional[str] = None
	try:
		while True:
			await asyncio.sleep(0.05)
			try:
				key = keys.poll()
				if key == "q":
					break
				if key == "r":
					controller.start_single_question()
				elif key == "c":
					on = controller.toggle_listening()
					log("runner.continuous", {"on": on})
				elif key == "s":
					print(controller.get_stats(), flush=True)
				last_error = None
			except KeyboardInterrupt:
				break
			except Exception as e:
				# Keep the keyboard loop alive; log each distinct error once.
				if str(e) != last_error:
					log("runner.key_error", {"error": str(e)}, level="warn")
					last_error = str(e)
				await asyncio.sleep(0.1)
	except KeyboardInterrupt:
		log("runner.interrupted")
	finally:
		controller.stop()
		if replay_task is not None:
			replay_task.cancel()
			try:
				await replay_task
			except asyncio.CancelledError:
				pass
		output.close()
		session_log.finalize()
		print(controller.get_stats(), flush=True)
		log("Runner stopped")
	return 0


def build_arg_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(prog="askscene", description="Ask spoken questions about the scene in front of you.")
	parser.add_argument("--config", default=os.environ.get("ASKSCENE_CONFIG"), help="YAML or JSON engine configuration")
	parser.add_argument("--scene-file", default=None, help="JSON tracker snapshot(s) replayed every second")
	parser.add_argument("--model-size", default=os.environ.get("ASKSCENE_MODEL_SIZE", "base"), help="Whisper model size (tiny, base, small, ...)")
	parser.add_argument("--log-dir", default=os.environ.get("ASKSCENE_LOG_DIR", "askscene_logs"), help="Directory for per-run JSON session logs")
	return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
	args = build_arg_parser().parse_args(argv)
	try:
		return asyncio.run(run_agent(args))
	except ConfigError as e:
		log("runner.config_error", {"error": str(e)}, level="error")
		return 2


if __name__ == "__main__":
	raise SystemExit(main())
