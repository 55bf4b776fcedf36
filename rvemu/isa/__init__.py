"""Instruction formats, decoders and executors for RV64I, Zicsr and Zifencei."""