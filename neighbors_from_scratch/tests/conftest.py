import matplotlib

# 화면 없는 환경에서도 시각화 테스트가 돌도록
matplotlib.use('Agg')
