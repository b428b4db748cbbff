"""ezanim: prompt to narrated, animated video.

Generates a narration script, synthesizes and transcribes the voiceover,
authors a browser animation synced to the word timings, refines it through
a bounded critic/judge loop, then captures it frame by frame and encodes
the final MP4.
"""

__version__ = "0.1.0"
