"""Captive-portal DNS: answer every A query with one fixed address, and its UDP loop."""