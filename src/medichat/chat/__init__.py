"""
Chat core — session store, transcription, response generation and the
orchestrator that sequences them per message.
"""
