"""Anonymous inbox: public submissions, one moderating operator."""
