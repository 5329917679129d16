from docchat.services.chat.synthesizer import AnswerSynthesizer

__all__ = ["AnswerSynthesizer"]
