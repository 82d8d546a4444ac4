# blazepose_tracker/main.py
import argparse
import logging
import os
import time
from collections import deque

import cv2
import numpy as np

from blazepose_engine.camera.camera_manager import CameraManager
from blazepose_engine.common.config import load_config
from blazepose_engine.common.enums import ExecutionMode
from blazepose_engine.common.errors import ConfigurationError
from blazepose_engine.common.log import configure_logging
from blazepose_engine.inference.factory import build_collaborators
from blazepose_engine.processing.pose_processor import InFlightFrames, PoseProcessor
from blazepose_engine.visualization.visualizer import Visualizer

logger = logging.getLogger("blazepose_tracker")

WINDOW_TITLE = 'BlazePose Tracker'


def main():
    """
    The main application loop.
    Initializes, runs, and gracefully shuts down the tracker components.
    """
    default_config = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'config.yaml')
    parser = argparse.ArgumentParser(description="Real-time BlazePose tracking from a camera.")
    parser.add_argument('--config', default=default_config, help="Path to the YAML configuration")
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        configure_logging()
        logger.error("Failed to initialize. %s", e)
        return
    configure_logging(config.logging.level)

    fps_history = deque(maxlen=100)
    asynchronous = config.pipeline.execution_mode == ExecutionMode.ASYNC

    try:
        detector, regressor = build_collaborators(config.inference)
        # The processor closes the networks from here on, including when the camera fails to open
        with PoseProcessor(config, detector, regressor) as processor, CameraManager(config.camera) as camera:
            visualizer = Visualizer(config.visualization)
            in_flight = InFlightFrames(processor, config.pipeline.max_in_flight)
            last_frame_time = time.perf_counter()

            while camera.is_running():
                frame, metadata = camera.get_frame()
                if frame is None:
                    time.sleep(0.001) # Wait briefly if no frame is available
                    continue

                # --- Core Processing Pipeline ---
                if asynchronous:
                    in_flight.offer(frame, metadata)
                    ready = in_flight.pop_ready()
                    if ready is None:
                        continue
                    frame, result = ready
                else:
                    result = processor.process_frame(frame, metadata)

                # --- FPS Calculation ---
                now = time.perf_counter()
                latency = now - last_frame_time
                last_frame_time = now
                fps_history.append(1.0 / latency if latency > 0 else 0)
                avg_fps = float(np.mean(fps_history))

                output_frame = visualizer.render(frame, result, avg_fps)
                cv2.imshow(WINDOW_TITLE, output_frame)

                if cv2.waitKey(1) & 0xFF == ord('q'):
                    logger.info("Shutdown signal received.")
                    break

            in_flight.cancel()
            logger.info("Camera stats: %s, frames dropped in flight: %d", camera.get_stats(), in_flight.dropped)

    except (IOError, ConfigurationError) as e:
        logger.error("Failed to initialize. %s", e)
    finally:
        cv2.destroyAllWindows()
        logger.info("Application terminated.")


if __name__ == "__main__":
    main()
