"""Operations (scan, delete, transfer, commit)"""
